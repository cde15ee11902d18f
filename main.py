"""
XDrive driver API stub
======================
Local stand-in for the remote driver API. Run with: python main.py
(or ``uvicorn main:app --reload``) and point ``API_BASE_URL`` at it.
"""

import uvicorn

from xdrive_driver.config import settings
from xdrive_driver.stub.server import create_stub_app

app = create_stub_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.stub_host, port=settings.stub_port, reload=True)
