from .http.model import (
	HTTPRequest,
	HTTPResponse,
	HTTPRequestError,
)  # NOQA: F401
from .config import Options, ConfigError  # NOQA: F401
from .service import FileService  # NOQA: F401
from .server import run  # NOQA: F401


# EOF
