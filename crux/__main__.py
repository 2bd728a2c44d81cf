from crux.cli import app

app()
