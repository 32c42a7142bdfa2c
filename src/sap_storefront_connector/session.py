"""
Gestión de la sesión del Service Layer de SAP Business One.

La sesión es una cookie B1SESSION con expiración; se renueva bajo demanda
antes de que caduque y se invalida ante cualquier 401.
"""
import json
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

import requests
import urllib3

from .models import ApiErrorKind, ApiResult, SapSession
from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

SESSION_COOKIE = "B1SESSION"


class SAPAuthError(Exception):
    """Excepción para errores de autenticación con SAP"""
    pass


class SessionStore(Protocol):
    """Almacenamiento de la sesión entre procesos"""

    def load(self) -> Optional[SapSession]:
        ...

    def save(self, session: SapSession, ttl: int) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemorySessionStore:
    """Almacén de sesión en memoria (un solo proceso)"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._session: Optional[SapSession] = None
        self._stored_until = 0.0

    def load(self) -> Optional[SapSession]:
        if self._session is None or self._clock() >= self._stored_until:
            return None
        return self._session

    def save(self, session: SapSession, ttl: int) -> None:
        self._session = session
        self._stored_until = self._clock() + ttl

    def clear(self) -> None:
        self._session = None
        self._stored_until = 0.0


class FileSessionStore:
    """
    Almacén de sesión en un archivo JSON con TTL.

    El archivo contiene la cookie de sesión, por eso se guarda con permisos 0600.
    """

    def __init__(self, path: Path, clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self._clock = clock
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> Optional[SapSession]:
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if self._clock() >= data['stored_at'] + data['ttl']:
                logger.debug("Sesión almacenada expirada")
                return None

            return SapSession(**data['session'])

        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Sesión almacenada corrupta: {e}. Se ignorará.")
            return None

    def save(self, session: SapSession, ttl: int) -> None:
        data = {
            "session": session.model_dump(),
            "stored_at": self._clock(),
            "ttl": ttl
        }
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

        # Permisos restrictivos
        self.path.chmod(0o600)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class SessionManager:
    """
    Mantiene una sesión autenticada contra el Service Layer.

    Colaboradores inyectados:
        config: Settings con URL, credenciales y tiempos
        store: SessionStore donde se persiste la sesión
        http: objeto compatible con requests.Session
        clock: función que retorna el tiempo actual en segundos
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        store: Optional[SessionStore] = None,
        http=None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config or default_settings
        self.clock = clock
        self.store = store or InMemorySessionStore(clock=clock)
        self.http = http or requests.Session()
        self._session: Optional[SapSession] = None
        self._lock = threading.Lock()

        if not self.config.SAP_VERIFY_SSL:
            # SAP suele exponer el Service Layer con certificado autofirmado
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def session(self) -> Optional[SapSession]:
        return self._session

    def _url(self, endpoint: str) -> str:
        return f"{self.config.api_base_url}{endpoint}"

    def is_valid(self) -> bool:
        """La sesión actual existe y no está dentro del margen de gracia"""
        if self._session is None:
            self._session = self.store.load()
        if self._session is None:
            return False
        return self._session.is_valid(self.clock(), self.config.SAP_SESSION_GRACE)

    def ensure_session(self) -> ApiResult:
        """
        Garantiza una sesión válida, haciendo login si hace falta.

        Returns:
            ApiResult vacío o con error AUTH_FAILED
        """
        if self.is_valid():
            return ApiResult.success()

        with self._lock:
            # Otro hilo pudo autenticarse mientras esperábamos
            if self._session is not None and self._session.is_valid(self.clock(), self.config.SAP_SESSION_GRACE):
                return ApiResult.success()
            return self.login()

    def login(self) -> ApiResult:
        """
        Autentica con el Service Layer y guarda la sesión.

        Returns:
            ApiResult vacío o con error AUTH_FAILED
        """
        logger.info(f"Autenticando con SAP: {self.config.SAP_URL}, DB: {self.config.SAP_COMPANY_DB}, "
                    f"Usuario: {self.config.SAP_USERNAME}")

        payload = {
            "CompanyDB": self.config.SAP_COMPANY_DB,
            "UserName": self.config.SAP_USERNAME,
            "Password": self.config.SAP_PASSWORD
        }

        try:
            response = self.http.request(
                "POST",
                self._url("Login"),
                json=payload,
                timeout=self.config.SAP_AUTH_TIMEOUT,
                verify=self.config.SAP_VERIFY_SSL
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Error de conexión al autenticar con SAP: {e}")
            return ApiResult.failure(ApiErrorKind.AUTH_FAILED, f"Error de conexión: {e}")

        if response.status_code != 200:
            logger.error(f"Login en SAP fallido (HTTP {response.status_code}): {response.text}")
            return ApiResult.failure(
                ApiErrorKind.AUTH_FAILED,
                f"Login fallido con HTTP {response.status_code}",
                status_code=response.status_code,
                response_body=response.text
            )

        cookies = {name: value for name, value in response.cookies.items()}
        token = cookies.get(SESSION_COOKIE)
        if not token:
            # Algunas versiones sólo devuelven el SessionId en el cuerpo
            try:
                token = (response.json() or {}).get("SessionId")
            except ValueError:
                token = None
            if token:
                cookies[SESSION_COOKIE] = token

        if not token:
            logger.error(f"Login en SAP sin cookie de sesión: {response.text}")
            return ApiResult.failure(
                ApiErrorKind.AUTH_FAILED,
                "La respuesta de login no contiene sesión",
                status_code=response.status_code,
                response_body=response.text
            )

        self._session = SapSession(
            session_token=token,
            cookies=cookies,
            expires_at=self.clock() + self.config.SAP_SESSION_LIFETIME
        )
        self.store.save(self._session, self.config.SAP_SESSION_CACHE_TTL)

        logger.info("Autenticación con SAP exitosa")
        return ApiResult.success()

    def authenticate(self) -> SapSession:
        """
        Igual que ensure_session pero lanza excepción.

        Raises:
            SAPAuthError: Si falla la autenticación
        """
        result = self.ensure_session()
        if not result.ok:
            raise SAPAuthError(result.error.message)
        return self._session

    def invalidate(self) -> None:
        """Descarta la sesión local y la almacenada"""
        self._session = None
        self.store.clear()

    def logout(self) -> None:
        """Cierra la sesión en SAP. Nunca lanza excepción."""
        session = self._session or self.store.load()
        if session is not None:
            try:
                self.http.request(
                    "POST",
                    self._url("Logout"),
                    headers={"Cookie": session.cookie_header()},
                    timeout=self.config.SAP_AUTH_TIMEOUT,
                    verify=self.config.SAP_VERIFY_SSL
                )
                logger.info("Sesión de SAP cerrada")
            except Exception as e:
                logger.warning(f"Error al cerrar sesión en SAP: {e}")

        try:
            self.invalidate()
        except OSError as e:
            logger.warning(f"No se pudo borrar la sesión almacenada: {e}")

    def cookie_header(self) -> str:
        return self._session.cookie_header() if self._session else ""
