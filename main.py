# main.py
import uvicorn

from app.main import create_app

app = create_app()

# You can run this file using: uvicorn main:app --reload
if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
