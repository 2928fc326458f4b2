"""
Command-line entry point of the person rank crawler.
Each flag selects a phase; phases run in a fixed order, one after another.
"""
import argparse
import logging
import sys
import traceback

from personrank.common.config import CrawlerConfig
from personrank.master.orchestrator import CrawlOrchestrator
from personrank.search.rank_report import top_pages_report
from personrank.store.db import DBFactory

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s [%(levelname)s] [Crawler] %(message)s'

# (dest, orchestrator method) in execution order
PHASES = (
    ('reindex', 'reindex'),
    ('refresh_ranks', 'refresh_ranks'),
    ('discover_robots', 'discover_robots_links'),
    ('fetch_robots', 'fetch_robots_links'),
    ('fetch_sitemaps', 'fetch_sitemap_links'),
    ('crawl', 'crawl_unscanned_pages'),
)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='personrank',
        description='Crawl known sites and rank their pages for tracked persons',
    )
    phases = parser.add_argument_group('phases')
    phases.add_argument('-irl', '--discover-robots', action='store_true',
                        help='insert links to robots.txt in database for found new sites')
    phases.add_argument('-frl', '--fetch-robots', action='store_true',
                        help="fetch links from robots.txt's and save them to the database")
    phases.add_argument('-fsl', '--fetch-sitemaps', action='store_true',
                        help='fetch links from unscanned sitemaps, found in db and save them')
    phases.add_argument('-cul', '--crawl', action='store_true',
                        help='crawl unscanned pages, found in database, and save words from them')
    phases.add_argument('-rdx', '--reindex', action='store_true',
                        help='reindex persons page ranks from previously saved vocabularies')
    phases.add_argument('-urk', '--refresh-ranks', action='store_true',
                        help='recompute and overwrite all persons page ranks from the index')
    phases.add_argument('-all', '--run-all', action='store_true',
                        help='run whole cycle of crawling')
    phases.add_argument('--top', type=int, metavar='PERSON_ID',
                        help='print the best ranked pages of a person')

    options = parser.add_argument_group('options')
    options.add_argument('-lpc', '--batch-size', type=int, metavar='N',
                         help='number of links to process at a time')
    options.add_argument('-rtm', '--redis-timeout', type=float, metavar='SECONDS',
                         help='redis time-out')
    options.add_argument('--limit', type=int, default=10, help='number of pages listed by --top')
    options.add_argument('--config', metavar='FILE', help='properties file with key=value settings')
    options.add_argument('--database-url', help='SQLAlchemy URL of the page store')
    options.add_argument('--redis-url', help='URL of the Redis index')
    options.add_argument('--log-file', help='also write the log to this file')
    options.add_argument('-v', '--verbose', action='store_true', help='debug logging')
    return parser


def configure_logging(log_file=None, verbose=False):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT, handlers=handlers)


def has_work(args):
    return args.run_all or args.top is not None or any(getattr(args, dest) for dest, _ in PHASES)


def run(args, factory):
    """Run the selected phases against the stores of `factory`."""
    page_store = factory.get_page_store()
    if args.top is not None:
        print(top_pages_report(page_store, args.top, args.limit))
    if not (args.run_all or any(getattr(args, dest) for dest, _ in PHASES)):
        return
    orchestrator = CrawlOrchestrator(page_store, factory.get_index(), config=factory.config)
    if args.run_all:
        orchestrator.run_full_cycle()
        return
    for dest, method in PHASES:
        if getattr(args, dest):
            logger.info(f"Running phase: {dest}")
            getattr(orchestrator, method)()


def main(argv=None, factory_class=DBFactory):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not has_work(args):
        parser.print_help()
        return 0

    configure_logging(args.log_file, args.verbose)
    try:
        config = CrawlerConfig.from_env(args.config).with_overrides(
            batch_size=args.batch_size,
            redis_timeout=args.redis_timeout,
            database_url=args.database_url,
            redis_url=args.redis_url,
        )
    except (OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    factory = factory_class(config)
    try:
        run(args, factory)
    except Exception as e:
        logger.error(f"The program was stopped abnormally: {e}")
        logger.error(traceback.format_exc())
        return 1
    finally:
        factory.close()
    logger.info("Crawler run complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
