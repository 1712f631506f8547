from __future__ import annotations

import argparse
import asyncio
import os
from dataclasses import replace
from typing import List, Optional

from common.config import EngineConfig, load_config
from common.errors import AssetMissing, ConfigError, DeviceError, NodeNotFound, UnknownNode
from common.logging_setup import get_logger, setup_logging
from device import open_device
from localization.session import MapSession
from map_assets.store import MapAssetStore
from matching.predictor import CorrespondencePredictor

log = get_logger("localization")


async def _run(args: argparse.Namespace, cfg: EngineConfig) -> int:
    store = MapAssetStore(cfg.assets_root)
    dev_cfg = cfg.device
    if args.simulate:
        dev_cfg = replace(dev_cfg, kind="simulated")
    if args.serial:
        dev_cfg = replace(dev_cfg, serial=args.serial)

    assets = None
    if dev_cfg.kind == "simulated":
        # the simulator renders the reference map itself
        assets = await asyncio.to_thread(store.load, args.map_id)
    device = open_device(dev_cfg, assets.reference_image if assets is not None else None)

    session = await MapSession.open(args.map_id, device, cfg, store=store, assets=assets)
    failures = 0
    async with session:
        for node_id in args.node:
            try:
                if args.tap:
                    region = await session.tap(node_id)
                else:
                    region = await session.resolve(node_id)
                print(f"{node_id}\t{region.rect.x}\t{region.rect.y}\t{region.rect.width}\t{region.rect.height}")
            except NodeNotFound as e:
                # map part unreachable right now; keep going with the other nodes
                log.warning(str(e))
                failures += 1
            except UnknownNode as e:
                log.error(str(e))
                failures += 1

    if isinstance(session.predictor, CorrespondencePredictor):
        log.info("Prediction timings", extra={"extra": session.predictor.metrics.summary()})
    return 1 if failures else 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Map localization: resolve node regions on the live map")
    ap.add_argument("--config", default="config/params.yaml")
    ap.add_argument("--map", dest="map_id", required=True, help="Map id (directory under assets.root)")
    ap.add_argument("--node", action="append", required=True, help="Node id, repeatable; resolved in order")
    ap.add_argument("--tap", action="store_true", help="Tap each node after resolving it")
    ap.add_argument("--simulate", action="store_true", help="Use the simulated pan/zoom device")
    ap.add_argument("--serial", default=None, help="adb device serial")
    ap.add_argument("--log-level", default=None)
    args = ap.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        setup_logging(args.log_level, force=True)
        log.error(str(e))
        return 2
    # --log-level, then LOG_LEVEL, then the YAML file
    setup_logging(args.log_level or os.environ.get("LOG_LEVEL") or cfg.logging.level, force=True)

    try:
        return asyncio.run(_run(args, cfg))
    except (AssetMissing, ConfigError, DeviceError) as e:
        log.error(str(e))
        return 2
    except KeyboardInterrupt:
        log.info("Interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
