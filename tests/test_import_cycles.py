"""
Import guard: key modules must import without ImportError.

Fast, simple test to catch regressions in import cycles.
"""


def test_import_main():
    import app.main  # noqa: F401

    assert app.main.app is not None


def test_import_messages_router():
    import app.api.messages  # noqa: F401


def test_import_inbound_processor():
    import app.services.inbound  # noqa: F401


def test_import_broadcast():
    import app.services.broadcast  # noqa: F401


def test_import_messaging_package():
    from app.services.messaging import InfobipWhatsAppClient, text_message  # noqa: F401
