"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run
    flask --app run.py contract-balance 12 --token "$SIGECON_TOKEN"

"""

from sigecon import create_app

# WSGI application object; `flask run` and gunicorn look for `app`.
app = create_app()

if __name__ == "__main__":
    # Dev only.
    app.run(debug=True)
