from stockline import create_app

app = create_app()
