from wanq import config
from wanq.api import create_app

if __name__ == "__main__":
    app = create_app()
    app.run(host=config.API_HOST, port=config.API_PORT)
