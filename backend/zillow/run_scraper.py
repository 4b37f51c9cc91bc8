import asyncio
import json
import logging
import sys
from pathlib import Path

from backend.zillow.errors import InputError
from backend.zillow.frontier import MemoryFrontier, open_mongo_frontier
from backend.zillow.scraper import collect_zillow
from backend.zillow.settings import MONGO_URI, CrawlInput, load_input
from backend.zillow.sinks import FanoutSink, JsonlSink, MongoSink

log = logging.getLogger("zillow")


def parse_args(argv=None):
    import argparse
    p = argparse.ArgumentParser(description="Crawl every Zillow listing inside a set of map rectangles")
    p.add_argument("input", help="Path to the JSON input document (startUrls, maxLevel, maxPages, ...)")
    p.add_argument("--max-level", type=int, default=None, help="Split depth ceiling (0 = unbounded)")
    p.add_argument("--max-pages", type=int, default=None, help="Pagination ceiling per search (0 = unbounded)")
    p.add_argument("--show-facts", action="store_true", help="Keep the detailed homeFacts array")
    p.add_argument("--concurrency", type=int, default=None)
    p.add_argument("--output", help="JSONL dataset path (default from input, data/dataset.jsonl)")
    p.add_argument("--frontier", choices=["memory", "mongo"], default=None,
                   help="Where pending requests live; 'mongo' survives restarts (MONGO_URI)")
    p.add_argument("--fetcher", choices=["browser", "http"], default=None)
    p.add_argument("--mongo-sink", action="store_true", help="Also upsert homes into MongoDB (MONGO_URI)")
    p.add_argument("--verbose", action="store_true", help="Enable verbose logging for the crawler")
    return p.parse_args(argv)


def apply_overrides(settings: CrawlInput, args) -> CrawlInput:
    update = {}
    for name in ("max_level", "max_pages", "concurrency", "output", "frontier", "fetcher"):
        v = getattr(args, name)
        if v is not None:
            update[name] = v
    if args.show_facts:
        update["show_facts"] = True
    if not update:
        return settings
    try:
        data = {**settings.model_dump(exclude={"start_urls"}), "start_urls": settings.start_urls, **update}
        return CrawlInput.model_validate(data)
    except ValueError as e:
        raise InputError(str(e)) from e


async def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )
    if args.verbose:
        logging.getLogger("zillow").setLevel(logging.DEBUG)

    try:
        settings = apply_overrides(load_input(args.input), args)
    except InputError as e:
        print(f"❌ Invalid input: {e}", file=sys.stderr)
        return 2

    out_path = Path(settings.output)
    sinks = [JsonlSink(out_path)]
    mongo_client = None
    if args.mongo_sink or settings.frontier == "mongo":
        from pymongo import MongoClient
        mongo_client = MongoClient(MONGO_URI)
    if args.mongo_sink:
        db = mongo_client.get_default_database("zillow")
        sinks.append(MongoSink(db["properties"], db["errors"]))
    sink = FanoutSink(*sinks)

    frontier = open_mongo_frontier(mongo_client) if settings.frontier == "mongo" else MemoryFrontier()

    print(f"\n🔍 Crawling {len(settings.start_urls)} start url(s) ...")
    try:
        stats = await collect_zillow(settings, sink, frontier=frontier)
    finally:
        sink.close()
        if mongo_client is not None:
            mongo_client.close()

    summary = {"output": str(out_path), **stats.to_dict()}
    summary_path = out_path.with_name("summary.json")
    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2, ensure_ascii=False)
        f.write("\n")

    if stats.failed:
        print(f"⚠️ {stats.failed} request(s) failed; see {summary_path}")
    print(f"✅ {stats.records} home(s), {stats.error_records} error record(s) saved to {out_path}")
    return 0


def cli() -> int:
    return asyncio.run(main())


if __name__ == "__main__":
    raise SystemExit(cli())
