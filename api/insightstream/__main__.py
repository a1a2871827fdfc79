import logging

import uvicorn

from insightstream.config import load_config


def main():
    cfg = load_config()
    logging.basicConfig(
        level=cfg.server.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("insightstream.main:app", host=cfg.server.host, port=cfg.server.port)


if __name__ == "__main__":
    main()
