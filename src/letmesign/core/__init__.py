"""Core CA, rendering, signing and verification operations.

Submodules that touch PDF objects import pikepdf through
:func:`require_pikepdf`, which keeps ``import letmesign`` and the CA layer
free of the qpdf extension until a document is actually opened.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import LetmesignError

if TYPE_CHECKING:
    import types

__all__: list[str] = []


def require_pikepdf() -> types.ModuleType:
    """Return the pikepdf module, importing it on first use.

    Raises:
        LetmesignError: When pikepdf (a declared dependency) is missing
            from the environment.
    """
    try:
        import pikepdf
    except ImportError as exc:
        raise LetmesignError(
            "PDF operations need pikepdf, which is not installed "
            "(pip install pikepdf)."
        ) from exc
    return pikepdf
