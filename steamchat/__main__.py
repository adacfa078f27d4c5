import platform

import aiohttp

import steamchat


def main() -> None:
    print("python version:", platform.python_version())
    print("steamchat version:", steamchat.__version__)
    print("aiohttp version:", aiohttp.__version__)
    print("orjson installed:", steamchat._const.HAS_ORJSON)
    print("operating system info:", platform.platform())


if __name__ == "__main__":
    main()
