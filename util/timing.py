# util/timing.py
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Any
import logging


@dataclass
class Stopwatch:
    started: float
    elapsed: float = 0.0


@contextmanager
def timed(logger: logging.Logger, name: str, **kv: Any) -> Iterator[Stopwatch]:
    """
    Usage:
      with timed(logger, "eval.window", job=job_id, size=3) as sw:
          ...
      sw.elapsed  # seconds, set on exit

    Emits one INFO on exit: "<name>.done ms=<int> key=val ..."
    """
    sw = Stopwatch(started=time.perf_counter())
    try:
        yield sw
    finally:
        sw.elapsed = time.perf_counter() - sw.started
        suffix = "".join(f" {k}={v}" for k, v in kv.items())
        logger.info("%s.done ms=%d%s", name, int(sw.elapsed * 1000), suffix)
