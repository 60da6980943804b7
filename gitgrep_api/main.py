"""
Git search API: repository listing and streaming ``git grep`` across
repositories and branches
"""

import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .git.grep import MatchPipeline, PatternType, UnsafeRevision, check_revision
from .git.runner import CommandRunner
from .repos import RepositoryNotFound, list_repos, resolve_repos
from .settings import Settings, settings
from .streaming import StreamingJSONResponse

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def resolve_repositories(repos: str, config: Settings = Depends(get_settings)) -> List[str]:
    """Resolve the ``repos`` path segment to repository names"""
    try:
        return resolve_repos(config.REPO_DIR, repos)
    except RepositoryNotFound as e:
        raise HTTPException(status_code=400, detail=str(e))
    except re.error as e:
        raise HTTPException(status_code=400, detail=f"invalid repository pattern {repos!r}: {e}")
    except OSError as e:
        raise HTTPException(status_code=400, detail=f"cannot read repository directory: {e}")


TRUE_FLAGS = ("", "1", "true", "yes", "on")
FALSE_FLAGS = ("0", "false", "no", "off")


def parse_flag(name: str, value: Optional[str]) -> bool:
    """Query flag: absent is false; bare (`?flag`) or a true word is true"""
    if value is None:
        return False
    if value.lower() in TRUE_FLAGS:
        return True
    if value.lower() in FALSE_FLAGS:
        return False
    raise HTTPException(status_code=400, detail=f"invalid value for {name}: {value!r}")


@router.get("/")
def list_repositories(config: Settings = Depends(get_settings)):
    """List repositories under the configured root"""
    logger.info("Listing repositories")
    try:
        return list_repos(config.REPO_DIR)
    except OSError as e:
        logger.error(f"Listing repositories failed: {e}")
        raise HTTPException(status_code=400, detail=f"cannot read repository directory: {e}")


@router.get("/repo/{repos}")
def get_repositories(repo_names: List[str] = Depends(resolve_repositories)):
    """Echo the repositories a name or ^pattern resolves to"""
    logger.info(f"Resolved repositories: {repo_names}")
    return repo_names


@router.get("/repo/{repos}/grep/{branches}")
async def grep_repositories(
    branches: str,
    repo_names: List[str] = Depends(resolve_repositories),
    q: str = ".",
    path: str = "*",
    ignore_case: Optional[str] = None,
    pattern_type: PatternType = "basic",
    target_line_no: int = 0,
    delimiter: str = "",
    config: Settings = Depends(get_settings),
):
    """Stream git grep matches as a JSON array (or delimiter-separated objects)"""
    if not branches.startswith("^"):
        try:
            check_revision(branches)
        except UnsafeRevision as e:
            raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Grep {q!r} in {path!r} on {repo_names} branches {branches!r}")
    runner = CommandRunner(
        config.GIT_EXECUTABLE,
        chunk_size=config.READ_CHUNK_SIZE,
        kill_timeout=config.KILL_TIMEOUT,
    )
    matches = MatchPipeline(config.REPO_DIR, runner).search(
        repo_names,
        branches,
        q,
        file_pattern=path,
        ignore_case=parse_flag("ignore_case", ignore_case),
        pattern_type=pattern_type,
        target_line_no=target_line_no,
    )
    return StreamingJSONResponse(matches, delimiter=delimiter, indent=config.JSON_INDENT)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
    return JSONResponse({"error": "; ".join(messages)}, status_code=400)


def create_app(config: Settings = settings) -> FastAPI:
    app = FastAPI(title="Git Grep API")
    app.state.settings = config

    if config.INSTALL_MIDDLEWARE:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["Transfer-Encoding"],
        )

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router, prefix=config.PREFIX)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
