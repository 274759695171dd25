# Entry point for `flask --app stockledger.wsgi ...`
from . import create_app

app = create_app()
