"""ASGI entrypoint.

Building the app reads settings and the providers file, so it lives here
rather than at import of ``oauth_kit.main``. Use: ``oauth_kit.asgi:app``
"""

from __future__ import annotations

from oauth_kit.main import build_app

app = build_app()
