# main.py

from dotenv import load_dotenv
load_dotenv(override=True)

from omnicrm import create_app

# Uvicorn memanggil factory ini ('factory=True')
app = create_app
