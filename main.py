from services.gateway.main import create_app

# uvicorn main:app
app = create_app()
