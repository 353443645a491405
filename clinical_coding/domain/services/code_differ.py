"""Code Set Differ.

This service computes which codes were added and removed between two code
collections. It is the single diff implementation shared by upload comparison,
the reconciler and the revert workflow.

Security Impact:
    - Operates on code strings only; descriptions and narrative are ignored
    - Output feeds the audit trail, so it must be deterministic

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Returns domain models (CodeDelta, CodeChangePayload) for use by services
"""

from typing import Iterable, List, Optional, Sequence, Union

from clinical_coding.domain.models import (
    CodeChangePayload,
    CodeDelta,
    Diagnosis,
    Procedure,
)

Code = Union[Diagnosis, Procedure, str]


def _code_string(item: Code) -> str:
    return item if isinstance(item, str) else item.code


def _key(code: str) -> str:
    return code.strip().upper()


def unique_codes(items: Iterable[Code]) -> List[str]:
    """Return code strings in order of first appearance, dropping case-insensitive duplicates."""
    seen = set()
    result = []
    for item in items:
        code = _code_string(item)
        key = _key(code)
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(code)
    return result


def diff_codes(old: Sequence[Code], new: Sequence[Code]) -> CodeDelta:
    """Compute codes added and removed between two collections.

    Codes are compared by code string, case-insensitively. Descriptions and
    any other fields are ignored. Each output list keeps the order in which the
    code first appears in its source collection.

    Parameters:
        old: Previous code collection
        new: Current code collection

    Returns:
        CodeDelta: ``added`` = codes in new but not old, ``removed`` = codes in old but not new

    Example:
        ```python
        delta = diff_codes(["J18.9"], ["J18.1", "J44.9"])
        delta.added    # ['J18.1', 'J44.9']
        delta.removed  # ['J18.9']
        ```
    """
    old_codes = unique_codes(old)
    new_codes = unique_codes(new)
    old_keys = {_key(c) for c in old_codes}
    new_keys = {_key(c) for c in new_codes}

    return CodeDelta(
        added=[c for c in new_codes if _key(c) not in old_keys],
        removed=[c for c in old_codes if _key(c) not in new_keys],
    )


def apply_delta(old: Sequence[Code], delta: CodeDelta) -> List[str]:
    """Reconstruct the new code-string set from the old set and a delta."""
    removed = {_key(c) for c in delta.removed}
    kept = [c for c in unique_codes(old) if _key(c) not in removed]
    return unique_codes(kept + list(delta.added))


def compute_code_change(
    old_dx: Sequence[Diagnosis],
    old_px: Sequence[Procedure],
    new_dx: Sequence[Diagnosis],
    new_px: Sequence[Procedure],
    source_audit_id: Optional[str] = None,
    revert_request_id: Optional[str] = None
) -> CodeChangePayload:
    """Build the full before/after snapshot recorded with a code change."""
    dx_delta = diff_codes(old_dx, new_dx)
    px_delta = diff_codes(old_px, new_px)

    return CodeChangePayload(
        old_dx=list(old_dx),
        old_px=list(old_px),
        new_dx=list(new_dx),
        new_px=list(new_px),
        dx_added=dx_delta.added,
        dx_removed=dx_delta.removed,
        px_added=px_delta.added,
        px_removed=px_delta.removed,
        source_audit_id=source_audit_id,
        revert_request_id=revert_request_id,
    )
