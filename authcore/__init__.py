"""
authcore: client-side authentication and session-lifecycle core.

Build the core once at process start::

    from authcore.config import get_config
    from authcore.services import create_auth_core

    core = create_auth_core(get_config())
    controller = core["controller"]
    controller.restore_session()

then hand ``controller`` to every consumer and bind the UI to
``controller.session_state``.
"""

__version__ = "1.0.0"
