#!/usr/bin/env python3
"""
对运行中的 airelay 发送一次 /chat 请求并打印回复或错误体。

用法：
  python scripts/smoke_chat.py
  python scripts/smoke_chat.py --base-url http://localhost:3000 --genre rpg "Hello"
"""

import argparse
import logging
import sys

import httpx

LOG = logging.getLogger("smoke-chat")


def main() -> int:
    parser = argparse.ArgumentParser(description="Send one /chat request to a running relay")
    parser.add_argument("message", nargs="?", default="Hello, I want to start a new adventure.")
    parser.add_argument("--base-url", default="http://localhost:3000")
    parser.add_argument("--genre", default=None)
    parser.add_argument("--timeout", type=float, default=120.0)
    args = parser.parse_args()
    logging.basicConfig(format="[%(levelname)s] %(message)s", level=logging.INFO, stream=sys.stdout)

    payload = {"message": args.message, "history": []}
    if args.genre:
        payload["genre"] = args.genre

    LOG.info("Testing %s/chat ...", args.base_url.rstrip("/"))
    try:
        response = httpx.post(f"{args.base_url.rstrip('/')}/chat", json=payload, timeout=args.timeout)
    except httpx.HTTPError as exc:
        LOG.error("request failed: %s", exc)
        return 1

    if response.is_success:
        LOG.info("Success! Response: %s", response.json())
        return 0
    LOG.error("Error: %s %s", response.status_code, response.reason_phrase)
    LOG.error("Body: %s", response.text)
    return 1


if __name__ == "__main__":
    sys.exit(main())
