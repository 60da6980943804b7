# gitgrep_api/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PREFIX: str = ""                          # mounted in front of every route, e.g. /api/git
    REPO_DIR: str = "/tmp/git"                # directory holding one checkout/bare repo per entry
    INSTALL_MIDDLEWARE: bool = False          # install CORS middleware
    GIT_EXECUTABLE: str = "git"
    READ_CHUNK_SIZE: int = 64 * 1024
    KILL_TIMEOUT: float = 3.0                 # seconds between SIGTERM and SIGKILL
    JSON_INDENT: int | None = None
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
