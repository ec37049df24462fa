import logging
import time
from typing import Callable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from services.runkeeper.gateway import FINALIZE_PROCEDURE, PUBLISH_STEPS, IngestGateway
from services.shared.config import settings
from services.shared.errors import FunctionMissingError, PublishError, StoreError
from services.shared.logging import run_logger

STEPS_MODE = "steps"
MONOLITHIC_MODE = "monolithic"


def is_transient(exc: BaseException) -> bool:
    return (
        isinstance(exc, StoreError)
        and not isinstance(exc, FunctionMissingError)
        and exc.transient
    )


class Publisher:
    """
    Moves a loaded run from staging into the serving tables.

    Runs the five publish procedures in order. A missing procedure switches
    to the single finalize procedure once; other failures surface as
    PublishError naming the step.
    """

    def __init__(
        self,
        gateway: IngestGateway,
        attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.attempts = attempts if attempts is not None else settings.publish_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.publish_backoff_seconds
        )
        self.sleep = sleep

    def publish(self, run_id: int) -> str:
        log = run_logger(__name__, run_id)
        try:
            for step in PUBLISH_STEPS:
                self._call(step, run_id, log)
            return STEPS_MODE
        except FunctionMissingError as e:
            log.warning("Step publish unavailable (%s); using %s", e, FINALIZE_PROCEDURE)

        try:
            self._call(FINALIZE_PROCEDURE, run_id, log)
        except FunctionMissingError as e:
            raise PublishError(FINALIZE_PROCEDURE, str(e)) from e
        return MONOLITHIC_MODE

    def _call(self, step: str, run_id: int, log: logging.LoggerAdapter) -> None:
        def _before_sleep(state: RetryCallState) -> None:
            log.warning(
                "%s attempt %d failed (%s); retrying",
                step,
                state.attempt_number,
                state.outcome.exception(),
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
            retry=retry_if_exception(is_transient),
            sleep=self.sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )
        try:
            retrying(self.gateway.call_procedure, step, run_id)
        except FunctionMissingError:
            raise
        except StoreError as e:
            raise PublishError(step, str(e)) from e
        log.info("%s completed", step)
