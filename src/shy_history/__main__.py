from shy_history.cli import app

app()
