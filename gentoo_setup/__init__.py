"""Gentoo Linux installer and configuration tools (state-driven, resumable).

Core design goals:
- State-driven and resumable
- Idempotent steps
- Every command logged
- Scriptable answers with interactive fallback
"""

__all__ = []
