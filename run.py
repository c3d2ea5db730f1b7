"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

First-time setup:

    flask --app run.py db upgrade        # or db init/migrate on a fresh checkout
    flask --app run.py create-superadmin
    flask --app run.py seed-demo         # optional demo suppliers/users
"""

from invoiceflow import create_app

# WSGI application object. `flask run` looks for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # Direct `python run.py` usage (dev only); use a WSGI server in production.
    app.run(debug=True)
