"""Batch executor for ``batch_update_work_items``.

Turns a list of create/update/delete descriptors into one ``$batch``
request body and tallies the per-operation status codes of the reply.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlencode

from .errors import InvalidArgumentError
from .patches import JSON_PATCH_HEADERS, field_ops
from .session import quote_segment

logger = logging.getLogger("azdo-mcp.batch")

SUPPORTED_METHODS = ("PATCH", "POST", "DELETE")
_KNOWN_KEYS = {"method", "workItemId", "workItemType", "fields"}


@dataclass(frozen=True)
class BatchOperation:
    """One validated entry of a batch update."""

    method: str
    work_item_id: Optional[int] = None
    work_item_type: Optional[str] = None
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchOutcome:
    succeeded: int
    failed: int

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


def _fail(index: int, reason: str) -> InvalidArgumentError:
    return InvalidArgumentError(f"operation {index}: {reason}", field=f"operations.{index}")


def parse_operation(index: int, raw: Any) -> BatchOperation:
    """Validate one raw operation descriptor.

    Raises:
        InvalidArgumentError: Message prefixed with ``operation <index>:``
    """
    if not isinstance(raw, dict):
        raise _fail(index, "must be an object")

    unknown = sorted(set(raw) - _KNOWN_KEYS)
    if unknown:
        raise _fail(index, f"unknown keys: {', '.join(unknown)}")

    method = raw.get("method")
    if not isinstance(method, str) or method.upper() not in SUPPORTED_METHODS:
        raise _fail(index, f"method must be one of {', '.join(SUPPORTED_METHODS)}")
    method = method.upper()

    work_item_id = raw.get("workItemId")
    work_item_type = raw.get("workItemType")
    fields = raw.get("fields")

    if method in ("PATCH", "DELETE"):
        if isinstance(work_item_id, bool) or not isinstance(work_item_id, int) or work_item_id <= 0:
            raise _fail(index, f"{method} requires a positive integer workItemId")
    if method == "POST":
        if not isinstance(work_item_type, str) or not work_item_type.strip():
            raise _fail(index, "POST requires workItemType")
    if method in ("PATCH", "POST"):
        if not isinstance(fields, dict) or not fields:
            raise _fail(index, f"{method} requires a non-empty fields object")
    elif fields:
        raise _fail(index, "DELETE does not take fields")

    return BatchOperation(
        method=method,
        work_item_id=work_item_id if method != "POST" else None,
        work_item_type=work_item_type.strip() if method == "POST" else None,
        fields=dict(fields or {}),
    )


def parse_operations(raw_operations: list) -> list[BatchOperation]:
    """Validate every operation before any request is built."""
    return [parse_operation(index, raw) for index, raw in enumerate(raw_operations)]


def _inner_uri(path: str, api_version: str, bypass_rules: bool, suppress_notifications: bool) -> str:
    query = {"api-version": api_version}
    if bypass_rules:
        query["bypassRules"] = "true"
    if suppress_notifications:
        query["suppressNotifications"] = "true"
    return f"{path}?{urlencode(query)}"


def build_batch_body(
    operations: list[BatchOperation],
    project: str,
    api_version: str,
    bypass_rules: bool = False,
    suppress_notifications: bool = False,
) -> list[dict]:
    """Map operations 1:1 to inner requests of a ``$batch`` call.

    Created items get area and iteration path defaulted to ``project``
    unless the operation sets them.
    """
    body = []
    for op in operations:
        if op.method == "POST":
            path = f"/{quote_segment(project)}/_apis/wit/workitems/${quote_segment(op.work_item_type)}"
            fields = {"System.AreaPath": project, "System.IterationPath": project, **op.fields}
            entry = {
                "method": "POST",
                "uri": _inner_uri(path, api_version, bypass_rules, suppress_notifications),
                "headers": dict(JSON_PATCH_HEADERS),
                "body": field_ops(fields),
            }
        elif op.method == "PATCH":
            path = f"/_apis/wit/workitems/{op.work_item_id}"
            entry = {
                "method": "PATCH",
                "uri": _inner_uri(path, api_version, bypass_rules, suppress_notifications),
                "headers": dict(JSON_PATCH_HEADERS),
                "body": field_ops(op.fields, op="replace"),
            }
        else:
            path = f"/_apis/wit/workitems/{op.work_item_id}"
            entry = {
                "method": "DELETE",
                "uri": _inner_uri(path, api_version, bypass_rules, suppress_notifications),
            }
        body.append(entry)
    return body


def summarize_results(result: Any) -> BatchOutcome:
    """Count entries with a 2xx ``code`` as successes, everything else as failures."""
    entries = result.get("value", []) if isinstance(result, dict) else (result or [])
    succeeded = 0
    failed = 0
    for entry in entries:
        code = entry.get("code") if isinstance(entry, dict) else None
        if isinstance(code, int) and 200 <= code < 300:
            succeeded += 1
        else:
            failed += 1
    logger.info(f"Batch finished: {succeeded} succeeded, {failed} failed")
    return BatchOutcome(succeeded=succeeded, failed=failed)
