"""
Hierarchical runtime tracing for Scene Rec.

Provides structured, nested logging with timing information so a
reconstruction run can be followed stage by stage without a debugger.
Span nesting is tracked per thread, since independent subgraphs may be
solved concurrently.
"""

import functools
import hashlib
import json
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime

import networkx as nx
import numpy as np
from pydantic import BaseModel
from scipy import sparse


class TracerConfig:
    """Configuration for the tracer."""

    def __init__(self):
        self.enabled = False
        self.level = "INFO"
        self.file_path = None
        self.json_output = False
        self._file_handle = None

    def configure(self, enabled=False, level="INFO", file_path=None, json_output=False):
        """Configure tracer settings."""
        self.enabled = enabled
        self.level = level.upper()
        self.file_path = file_path
        self.json_output = json_output

        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

        if file_path and enabled:
            self._file_handle = open(file_path, "w", encoding="utf-8")

    def close(self):
        """Close file handle if open."""
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None


class Tracer:
    """
    Hierarchical tracer for structured reconstruction logging.

    Supports nested spans with timing, argument summarization, and
    multiple output formats (text, JSON).
    """

    LEVELS = {"ERROR": 0, "WARN": 1, "INFO": 2, "DEBUG": 3}

    def __init__(self):
        self.config = TracerConfig()
        self._local = threading.local()
        self._write_lock = threading.Lock()

    @property
    def _depth(self):
        return getattr(self._local, "depth", 0)

    @_depth.setter
    def _depth(self, value):
        self._local.depth = value

    @property
    def _span_stack(self):
        stack = getattr(self._local, "span_stack", None)
        if stack is None:
            stack = []
            self._local.span_stack = stack
        return stack

    def _should_log(self, level):
        """Check if this level should be logged."""
        if not self.config.enabled:
            return False
        return self.LEVELS.get(level, 2) <= self.LEVELS.get(self.config.level, 2)

    def _format_timestamp(self):
        """Format current time as HH:MM:SS.mmm."""
        now = datetime.now()
        return now.strftime("%H:%M:%S.") + f"{now.microsecond // 1000:03d}"

    def _indent(self):
        """Get indentation string based on depth."""
        return "  " * self._depth

    def _write(self, level, module, func, message, meta=None):
        """Write a log line."""
        if not self._should_log(level):
            return

        timestamp = self._format_timestamp()
        indent = self._indent()
        location = f"{module}:{func}" if func else module

        text_line = f"{timestamp} {level:<5} {indent}{location}  {message}"

        with self._write_lock:
            print(text_line, file=sys.stderr)

            if self.config._file_handle:
                self.config._file_handle.write(text_line + "\n")
                self.config._file_handle.flush()

            if self.config.json_output:
                json_record = {
                    "timestamp": timestamp,
                    "level": level,
                    "depth": self._depth,
                    "thread": threading.current_thread().name,
                    "module": module,
                    "function": func,
                    "message": message,
                    "meta": {k: summarize(v) for k, v in (meta or {}).items()},
                }
                json_line = json.dumps(json_record)
                print(json_line, file=sys.stderr)
                if self.config._file_handle:
                    self.config._file_handle.write(json_line + "\n")

    @contextmanager
    def span(self, name, module="", **meta):
        """
        Context manager for a traced span.

        Logs start and end with timing information.
        """
        if not self.config.enabled:
            yield
            return

        start_time = time.perf_counter()
        meta_str = " ".join(f"{k}={summarize(v)}" for k, v in meta.items())
        self._write("INFO", module, name, f"start {meta_str}".strip())
        self._depth += 1
        self._span_stack.append((name, module, start_time))

        error_occurred = False
        try:
            yield
        except Exception as e:
            error_occurred = True
            elapsed = (time.perf_counter() - start_time) * 1000
            self._depth -= 1
            self._span_stack.pop()
            self._write("ERROR", module, name, f"failed dt={elapsed:.0f}ms error={type(e).__name__}: {str(e)[:100]}")
            raise
        finally:
            if not error_occurred:
                elapsed = (time.perf_counter() - start_time) * 1000
                self._depth -= 1
                self._span_stack.pop()
                self._write("INFO", module, name, f"end ok dt={elapsed:.0f}ms")

    def event(self, message, level="INFO", **meta):
        """Log a one-off event within the current span."""
        if not self._should_log(level):
            return

        module = ""
        func = ""
        if self._span_stack:
            func, module, _ = self._span_stack[-1]

        meta_str = " ".join(f"{k}={summarize(v)}" for k, v in meta.items())
        full_message = f"{message} {meta_str}".strip()
        self._write(level, module, func, full_message, meta)


def summarize(obj, max_len=200):
    """
    Summarize an object for logging.

    Returns a compact string representation that never exceeds max_len chars.
    Handles numpy arrays, scipy sparse matrices, networkx graphs, pydantic
    models, strings, and containers.
    """
    try:
        result = _summarize_impl(obj)
        if len(result) > max_len:
            return result[:max_len - 3] + "..."
        return result
    except Exception:
        return f"<{type(obj).__name__}>"


def _summarize_impl(obj):
    """Implementation of summarize without length capping."""
    if obj is None:
        return "None"

    type_name = type(obj).__name__

    # numpy arrays
    if isinstance(obj, np.ndarray):
        shape_str = "x".join(str(s) for s in obj.shape)
        dtype_str = str(obj.dtype)
        if obj.size > 0 and obj.size < 1000:
            h = hashlib.md5(obj.tobytes()).hexdigest()[:8]
        else:
            h = hashlib.md5(str(obj.shape).encode()).hexdigest()[:8]
        return f"ndarray({dtype_str},{shape_str},h={h})"
    if isinstance(obj, np.generic):
        return str(obj.item())

    # scipy sparse matrices
    if sparse.issparse(obj):
        rows, cols = obj.shape
        return f"{type_name}({rows}x{cols},nnz={obj.nnz})"

    # networkx graphs
    if isinstance(obj, nx.Graph):
        return f"{type_name}(nodes={obj.number_of_nodes()},edges={obj.number_of_edges()})"

    # pydantic models
    if isinstance(obj, BaseModel):
        fields = list(type(obj).model_fields.keys())[:3]
        return f"{type_name}(fields={fields}...)"

    # strings
    if isinstance(obj, str):
        if len(obj) > 50:
            h = hashlib.md5(obj.encode()).hexdigest()[:8]
            return f"str(len={len(obj)},h={h})"
        return repr(obj)

    # lists and tuples
    if isinstance(obj, (list, tuple)):
        if len(obj) == 0:
            return f"{type_name}(len=0)"
        first_type = type(obj[0]).__name__ if obj else "?"
        return f"{type_name}(len={len(obj)},first={first_type})"

    # dicts
    if isinstance(obj, dict):
        keys = list(obj.keys())[:5]
        keys_str = ",".join(str(k) for k in keys)
        return f"dict(len={len(obj)},keys=[{keys_str}])"

    # numbers
    if isinstance(obj, (bool, int, float)):
        return str(obj)

    # fallback
    return f"<{type_name}>"


def trace(label=None):
    """
    Decorator to trace function execution.

    Wraps a function in a span that logs start/end with timing.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if not _tracer.config.enabled:
                return func(*args, **kwargs)

            func_module = func.__module__.split(".")[-1] if func.__module__ else ""
            func_name = label or func.__name__

            with _tracer.span(func_name, module=func_module):
                result = func(*args, **kwargs)
                return result

        return wrapper
    return decorator


# Global tracer instance
_tracer = Tracer()


def get_tracer():
    """Get the global tracer instance."""
    return _tracer


def configure_tracer(enabled=False, level="INFO", file_path=None, json_output=False):
    """Configure the global tracer."""
    _tracer.config.configure(
        enabled=enabled,
        level=level,
        file_path=file_path,
        json_output=json_output,
    )
