from __future__ import annotations

import concurrent.futures
import logging

from pydantic import ValidationError

from src.telecare.domain.models.soap_report import SOAPSections
from src.telecare.errors import RegenerationFailed
from src.telecare.services.drafting.backends import DraftingBackend, DraftingContext, DraftingError

logger = logging.getLogger("drafting")


def run_draft(backend: DraftingBackend, context: DraftingContext, *, timeout: float) -> SOAPSections:
    """Call the drafting model once and validate its output.

    The call runs in a worker thread and is abandoned after ``timeout``
    seconds. Model errors, timeouts and structurally invalid output all raise
    :class:`RegenerationFailed`; nothing is retried.
    """

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="drafting")
    future = executor.submit(backend.draft, context)
    try:
        raw = future.result(timeout=timeout)
    except concurrent.futures.TimeoutError as exc:
        logger.warning("Drafting model call exceeded %.1fs timeout", timeout)
        raise RegenerationFailed("Drafting model timed out; please retry") from exc
    except DraftingError as exc:
        logger.warning("Drafting model call failed: %s", exc)
        raise RegenerationFailed(f"Drafting model failed: {exc}") from exc
    except Exception as exc:
        logger.exception("Drafting backend raised an unexpected error")
        raise RegenerationFailed("Drafting model call failed; please retry") from exc
    finally:
        # Do not wait for a call that timed out; its result is discarded.
        # The worker thread is not a daemon, so it can outlive the request
        # until the backend returns; backends must bound their own calls
        # (LLMDraftingBackend passes the same timeout to its client).
        executor.shutdown(wait=False, cancel_futures=True)

    try:
        return SOAPSections.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Drafting model output failed validation: %d error(s)", exc.error_count())
        raise RegenerationFailed("Drafting model output is missing required report fields") from exc
