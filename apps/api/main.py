"""Thin API launcher.

Run with: uvicorn apps.api.main:app

The app instance is created here, not in teak.app, so importing create_app
never requires the environment to be configured.
"""

from teak.app import add_request_id_middleware, create_app

app = create_app()
# Added last so it runs first (outermost).
add_request_id_middleware(app)

__all__ = ["app"]
