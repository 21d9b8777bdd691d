import os

import uvicorn


def run_backend():
    uvicorn.run(
        "clouddrive.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3001")),
        reload=False
    )


if __name__ == "__main__":
    run_backend()
