from contextlib import contextmanager
from fastapi import Depends, HTTPException, status
import logging
import re
import unicodedata

from .errors import InvalidArgument, NotFound
from .models import User
from .users import current_active_user

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("spanish", "french", "german", "italian", "portuguese")


# Dependency to enforce authentication
async def require_authenticated_user(user: User = Depends(current_active_user)):
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


@contextmanager
def http_errors(action: str):
    """Map domain errors to HTTP codes; anything unexpected becomes a logged 500."""
    try:
        yield
    except HTTPException:
        raise
    except InvalidArgument as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.exception("Failed to %s", action)
        raise HTTPException(status_code=500, detail=f"Failed to {action}: {e}") from e


def parse_positive_id(raw: str, *, label: str = "ID") -> int:
    """Path ids arrive as strings; only positive base-10 integers are accepted."""
    try:
        value = int(str(raw).strip(), 10)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{label} must be a positive integer")
    if value <= 0:
        raise HTTPException(status_code=400, detail=f"{label} must be a positive integer")
    return value


def normalize_language(value: str | None, *, default: str = "spanish") -> str:
    lang = (value or default).strip().lower()
    if lang not in SUPPORTED_LANGUAGES:
        raise HTTPException(
            status_code=400,
            detail=f"Supported languages: {', '.join(SUPPORTED_LANGUAGES)}",
        )
    return lang


def slugify(s: str) -> str:
    s = unicodedata.normalize("NFKD", s or "").encode("ascii", "ignore").decode("ascii")
    s = s.strip().lower()
    s = re.sub(r"[^a-z0-9\-]+", "-", s)
    return re.sub(r"-+", "-", s).strip("-")
