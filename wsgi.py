from planner import create_app

app = create_app()

# gunicorn -w 2 wsgi:app
