import os

from securecode.app import create_app


if __name__ == "__main__":
    app = create_app(install_signal_handlers=True)
    app.run(
        host=os.getenv("SECURECODE_HOST", "127.0.0.1"),
        port=int(os.getenv("SECURECODE_PORT", "3000")),
        debug=bool(os.getenv("SECURECODE_DEBUG")),
        use_reloader=False,
    )
