"""
HTTP trigger for web-scope cron passes: GET /_cron, GET /_cron/status
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response, status

from webcron.core.config import settings
from webcron.core.cron.models import Scope
from webcron.core.cron.service import Cron, get_cron
from webcron.core.observability.metrics import get_metrics


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/_cron", tags=["cron"])


def cron_dependency() -> Cron:
    return get_cron()


@router.get("", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def run_web_cron(cron: Cron = Depends(cron_dependency)) -> Response:
    """Run a web-scope cron pass. Always answers 204; errors surface as 500."""
    if settings.cron_web_listener:
        cron.run(Scope.WEB)
    else:
        logger.debug("Web cron listener disabled; skipping pass")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/status")
def cron_status(cron: Cron = Depends(cron_dependency)) -> Dict[str, Any]:
    """List registered jobs with their last and next run, plus pass metrics."""
    return {
        "jobs": [job_status.to_dict() for job_status in cron.status()],
        "metrics": get_metrics().to_dict(),
    }
