# Overview: WSGI entrypoint; FLASK_APP target for the CLI and production servers.

from storefront import create_app

app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000)
