"""KPI logging helpers for smart factor optimisation runs."""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

logger = logging.getLogger("smart_slam.kpi")


def _jsonable(value: Any) -> Any:
    # numpy scalars and arrays
    if hasattr(value, "tolist"):
        return value.tolist()
    raise TypeError(f"{type(value).__name__} is not JSON serialisable")


class KPILogger:
    """Emit structured KPI events for downstream analysis.

    Events go to the ``smart_slam.kpi`` logger and, when ``log_path`` is
    given, to a JSON-lines file. Usable as a context manager.
    """

    def __init__(
        self,
        enabled: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None,
        log_path: Optional[str] = None,
        emit_to_logger: bool = True,
    ):
        self.enabled = enabled
        self.extra_fields = dict(extra_fields or {})
        self.emit_to_logger = emit_to_logger
        self._sink = open(log_path, "w", encoding="utf-8") if log_path else None

    def __enter__(self) -> "KPILogger":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _emit(self, event: str, **fields: Any) -> None:
        if not self.enabled:
            return
        record = {"event": event, "ts": time.time(), **self.extra_fields}
        record.update((k, v) for k, v in fields.items() if v is not None)
        line = json.dumps(record, sort_keys=True, default=_jsonable)
        if self.emit_to_logger:
            logger.info("KPI %s", line)
        if self._sink is not None:
            self._sink.write(line + "\n")
            self._sink.flush()

    def scenario(self, poses: int, landmarks: int, observations: int, **fields: Any) -> None:
        self._emit("scenario", poses=poses, landmarks=landmarks, observations=observations, **fields)

    def linearization(self, iteration: int, factor_count: int, degenerate: int, duration_s: float) -> None:
        self._emit("linearization", iteration=iteration, factor_count=factor_count,
                   degenerate=degenerate, duration_s=duration_s)

    def optimization_start(self, iteration: int, factor_count: int, variable_count: int) -> None:
        self._emit("optimization_start", iteration=iteration, factor_count=factor_count,
                   variable_count=variable_count)

    def optimization_end(
        self,
        iteration: int,
        duration_s: float,
        updated_keys: Optional[int] = None,
        *,
        error: Optional[float] = None,
        lambda_: Optional[float] = None,
        max_step: Optional[float] = None,
    ) -> None:
        """One LM iteration; ``updated_keys`` is 0 when no step was accepted."""
        self._emit("optimization_end", iteration=iteration, duration_s=duration_s,
                   updated_keys=updated_keys, error=error, max_step=max_step,
                   **{"lambda": lambda_})

    def close(self) -> None:
        sink, self._sink = self._sink, None
        if sink is not None:
            sink.close()
