from storeflow import create_app

app = create_app()
