"""
Type definitions for the worker pool.

Defines worker types, lifecycle states and the message schemas exchanged
between the UI process and worker processes. Messages travel as plain dicts
(see to_dict/from_dict) so they pickle cleanly through multiprocessing queues.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional


class WorkerType(Enum):
    """Types of worker processes."""
    SPECTROGRAM = "spectrogram"   # window + FFT + axis resampling


class WorkerState(Enum):
    """Worker slot lifecycle states."""
    STOPPED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    ERROR = auto()
    RESTARTING = auto()


class MessageType(Enum):
    """Types of messages sent between UI and workers."""
    # Control messages
    SHUTDOWN = "shutdown"

    # Spectrogram worker messages
    COMPUTE_SPECTROGRAM = "compute-spectrogram"
    SPECTROGRAM_RESULT = "spectrogram-result"

    # Error messages
    ERROR = "error"


@dataclass
class WorkerMessage:
    """
    Message sent to a worker process.

    Payloads must be picklable and must not contain Qt objects.
    """
    msg_type: MessageType
    seq_no: int
    correlation_id: str
    timestamp: float = field(default_factory=time.time)
    payload: Dict[str, Any] = field(default_factory=dict)
    worker_type: Optional[WorkerType] = None

    @property
    def action(self) -> str:
        """Wire name of the requested action."""
        return self.msg_type.value

    def to_dict(self) -> Dict[str, Any]:
        """Serialize message to dictionary."""
        return {
            "action": self.msg_type.value,
            "seq_no": self.seq_no,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp,
            "payload": self.payload,
            "worker_type": self.worker_type.value if self.worker_type else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkerMessage":
        """Deserialize message from dictionary."""
        return cls(
            msg_type=MessageType(data["action"]),
            seq_no=data["seq_no"],
            correlation_id=data["correlation_id"],
            timestamp=data.get("timestamp", time.time()),
            payload=data.get("payload", {}),
            worker_type=WorkerType(data["worker_type"]) if data.get("worker_type") else None,
        )


@dataclass
class WorkerResponse:
    """
    Response from a worker process.

    Exactly one response is sent per request; ``success`` False means
    ``error`` holds the worker's message and ``payload`` is empty.
    """
    msg_type: MessageType
    seq_no: int
    correlation_id: str
    success: bool
    timestamp: float = field(default_factory=time.time)
    error: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize response to dictionary."""
        return {
            "msg_type": self.msg_type.value,
            "seq_no": self.seq_no,
            "correlation_id": self.correlation_id,
            "success": self.success,
            "timestamp": self.timestamp,
            "error": self.error,
            "payload": self.payload,
            "processing_time_ms": self.processing_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkerResponse":
        """Deserialize response from dictionary."""
        return cls(
            msg_type=MessageType(data["msg_type"]),
            seq_no=data["seq_no"],
            correlation_id=data["correlation_id"],
            success=data["success"],
            timestamp=data.get("timestamp", time.time()),
            error=data.get("error"),
            payload=data.get("payload", {}),
            processing_time_ms=data.get("processing_time_ms", 0.0),
        )
