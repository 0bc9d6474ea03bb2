"""Shared API dependencies."""

import secrets
from pathlib import Path

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from foldcss.core.config import settings
from foldcss.core.logging import get_logger
from foldcss.models.critical_css import CriticalCSSRequest
from foldcss.services import critical_css as css_service

logger = get_logger(__name__)

api_token_header = APIKeyHeader(name=settings.auth_token_header, auto_error=False)


def verify_api_key(token: str | None = Security(api_token_header)) -> str:
    """Accept the configured key, bare or as a ``Bearer`` token.

    Authentication is disabled when no key is configured.
    """

    expected = settings.auth_api_key
    if not expected:
        return ""

    presented = (token or "").strip()
    if presented[:7].lower() == "bearer ":
        presented = presented[7:].strip()

    if presented and secrets.compare_digest(presented.encode(), expected.encode()):
        return presented

    logger.info("api_key_rejected", header=settings.auth_token_header, present=bool(token))
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API token")


def get_auth_dependency(token: str = Depends(verify_api_key)) -> str:
    """Expose dependency alias for routers."""

    return token


def get_extractor() -> css_service.CriticalCSSExtractor:
    """Extractor used by request-scoped extraction."""

    return css_service.critical_css_extractor


def check_stylesheet_path(payload: CriticalCSSRequest) -> CriticalCSSRequest:
    """Confine ``css_file_path`` to ``settings.stylesheet_root``.

    Without a configured root, HTTP callers must send ``css_string``.
    """

    if not payload.css_file_path:
        return payload

    if not settings.stylesheet_root:
        logger.info("stylesheet_path_rejected", path=payload.css_file_path, reason="disabled")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="css_file_path is not accepted; send css_string instead",
        )

    root = Path(settings.stylesheet_root).resolve()
    path = (root / payload.css_file_path).resolve()
    if not path.is_relative_to(root):
        logger.info("stylesheet_path_rejected", path=payload.css_file_path, reason="outside_root")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="css_file_path must stay inside the stylesheet root",
        )
    return payload.model_copy(update={"css_file_path": str(path)})
