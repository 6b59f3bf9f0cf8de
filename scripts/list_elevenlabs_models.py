#!/usr/bin/env python3
"""
列出当前 ELEVENLABS_API_KEY 可用的 ElevenLabs TTS 模型，便于选择 ELEVENLABS_MODEL。

用法：
  python scripts/list_elevenlabs_models.py
  python scripts/list_elevenlabs_models.py -v
"""

import argparse
import asyncio
import logging
import sys

from airelay.adapters.elevenlabs import ElevenLabsSpeechAdapter
from airelay.adapters.upstream import build_upstream_client
from airelay.config.settings import settings
from airelay.core.errors import RelayError

LOG = logging.getLogger("list-elevenlabs-models")


def setup_log(verbose: int) -> None:
    level = logging.DEBUG if verbose > 0 else logging.INFO
    logging.basicConfig(format="[%(levelname)s] %(message)s", level=level, stream=sys.stdout)


async def _list_models() -> int:
    if not settings.elevenlabs_api_key:
        LOG.error("ELEVENLABS_API_KEY is not set")
        return 1
    async with build_upstream_client(settings) as client:
        adapter = ElevenLabsSpeechAdapter(
            client,
            api_key=settings.elevenlabs_api_key,
            voice_id=settings.elevenlabs_voice_id,
            base_url=settings.elevenlabs_base_url,
        )
        try:
            models = await adapter.list_models()
        except RelayError as exc:
            LOG.error("fetching models failed: %s %s", exc.message, exc.detail)
            return 1

    print("Available Models:")
    for model in models:
        print(f"- {model.get('name')} (ID: {model.get('model_id')})")
        print(f"  Description: {model.get('description')}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="List ElevenLabs TTS models")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    args = parser.parse_args()
    setup_log(args.verbose)
    return asyncio.run(_list_models())


if __name__ == "__main__":
    sys.exit(main())
