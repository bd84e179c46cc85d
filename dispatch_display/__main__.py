# dispatch_display/__main__.py

import uvicorn

from dispatch_display.config import load_dotenv, load_settings


def main():
    load_dotenv()
    settings = load_settings()
    uvicorn.run("dispatch_display.main:app", host=settings["HOST"], port=settings["PORT"])


if __name__ == "__main__":
    main()
