"""
Command line front end for the video archive.

Usage:
    vidarchive search <query> [--no-frames] [--no-objects] [--video <name> ...]
    vidarchive search-image <path> [--video <name> ...]
    vidarchive recent [--rerun <id> | --remove <id> | --clear]
    vidarchive videos [--all]
    vidarchive status <video_name>
    vidarchive upload <path> [--watch]
    vidarchive process <video_name> <url> --source youtube|drive [--fps <n>] [--watch]
    vidarchive watch <video_name>
    vidarchive delete <video_name>
    vidarchive stream-url <video_name> [--start <seconds>]
    vidarchive health

Examples:
    vidarchive search 'person walking'
    vidarchive search 'red car' --no-frames --video street_cam --limit 5
    vidarchive process 'My Holiday' 'https://youtube.com/watch?v=xyz' --source youtube --fps 2 --watch
"""

import argparse
import asyncio
import json
import mimetypes
import os
import sys
from typing import List, Optional

import aiofiles

from .client import ArchiveClient
from .config import ArchiveConfig
from .custom_logger import log_manager
from .exceptions import ArchiveException
from .models import JobStatus
from .ingestion import IngestionStatusTracker, JobEvent, JobEventKind, UploadCoordinator
from .search import SearchOrchestrator, SearchPhase, VideoFilterSelection
from .search.formatting import describe_result
from .storage import JsonFileStorage, RecentImageStore
from .utils.error_handler import ErrorHandler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vidarchive",
        description="Search a processed video archive and submit new videos for processing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:")[1] if "Examples:" in __doc__ else None,
    )
    parser.add_argument('--api-url', type=str, default=None, help='Archive backend URL (default: ARCHIVE_API_URL or http://localhost:8000)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Log at DEBUG level')
    sub = parser.add_subparsers(dest="command", required=True)

    def add_search_flags(p):
        p.add_argument('--no-frames', action='store_true', help='Do not search whole frames')
        p.add_argument('--no-objects', action='store_true', help='Do not search detected objects')
        p.add_argument('--max-results', type=int, default=None, help='Number of results requested from the backend')
        p.add_argument('--limit', type=int, default=None, help='Number of results shown (5-50)')
        p.add_argument('--video', action='append', default=[], help='Restrict the search to this video (repeatable)')

    p = sub.add_parser('search', help='Search by text')
    p.add_argument('query', type=str)
    add_search_flags(p)

    p = sub.add_parser('search-image', help='Search by image')
    p.add_argument('path', type=str)
    add_search_flags(p)

    p = sub.add_parser('recent', help='List, rerun or remove recent image searches')
    group = p.add_mutually_exclusive_group()
    group.add_argument('--rerun', type=int, default=None, metavar='ID')
    group.add_argument('--remove', type=int, default=None, metavar='ID')
    group.add_argument('--clear', action='store_true')
    add_search_flags(p)

    p = sub.add_parser('videos', help='List completed videos')
    p.add_argument('--all', action='store_true', help='List every video with its status')

    p = sub.add_parser('status', help='Show the processing status of a video')
    p.add_argument('video_name', type=str)

    p = sub.add_parser('upload', help='Upload a video file for processing')
    p.add_argument('path', type=str)
    p.add_argument('--watch', action='store_true', help='Follow processing until it finishes')

    p = sub.add_parser('process', help='Process a video from YouTube or Google Drive')
    p.add_argument('video_name', type=str)
    p.add_argument('url', type=str)
    p.add_argument('--source', choices=['youtube', 'drive'], default='youtube')
    p.add_argument('--fps', type=int, default=1, help='Frames extracted per second (1-30)')
    p.add_argument('--watch', action='store_true', help='Follow processing until it finishes')

    p = sub.add_parser('watch', help='Follow the processing of a video until it finishes')
    p.add_argument('video_name', type=str)

    p = sub.add_parser('delete', help='Delete a processed or failed video')
    p.add_argument('video_name', type=str)

    p = sub.add_parser('stream-url', help='Print the playback URL of a video')
    p.add_argument('video_name', type=str)
    p.add_argument('--start', type=float, default=None, help='Start offset in seconds')

    sub.add_parser('health', help='Check the backend')
    return parser


def _print_event(event: JobEvent) -> None:
    job = event.job
    if event.kind == JobEventKind.PROGRESS and job is not None:
        steps = ", ".join(step.replace("_", " ") for step in job.steps_completed)
        print(f"{event.video_name}: {job.status.value.replace('_', ' ').upper()} {round(job.progress)}%"
              + (f" (done: {steps})" if steps else ""))
    elif event.kind == JobEventKind.TERMINAL and job is not None:
        print(f"{event.video_name}: {job.status.value.upper()} - frames: {job.frame_count}, objects: {job.object_count}")
        if job.error_message:
            print(f"Error: {job.error_message}")
    elif event.kind in (JobEventKind.POLL_ERROR, JobEventKind.CLOSE_REJECTED):
        print(f"{event.video_name}: {event.message}", file=sys.stderr)


def _print_results(orchestrator: SearchOrchestrator) -> int:
    state = orchestrator.state
    if state.phase == SearchPhase.ERROR:
        print(f"Error: {state.error_message}", file=sys.stderr)
        return 1
    visible = orchestrator.visible_results()
    if not visible:
        print(f'No results found for "{state.last_query}"')
        return 0
    print(f'Search results for "{state.last_query}": showing {len(visible)} of {len(state.results)}')
    for rank, result in enumerate(visible, start=1):
        print(describe_result(result, rank))
    return 0


async def _watch(tracker: IngestionStatusTracker, video_name: str) -> int:
    if not tracker.is_tracked(video_name):
        # raises ResourceNotFoundException for a name the backend does not know
        current = await tracker.client.get_job_status(video_name)
        if current.is_terminal:
            _print_event(JobEvent(kind=JobEventKind.TERMINAL, video_name=video_name, job=current))
            return 0 if current.status == JobStatus.COMPLETED else 1

    unsubscribe = tracker.subscribe(_print_event)
    try:
        if not tracker.is_tracked(video_name):
            tracker.track(video_name)
        job = await tracker.wait_until_terminal(video_name)
        return 0 if job.status == JobStatus.COMPLETED else 1
    finally:
        unsubscribe()


async def _run(args, config: ArchiveConfig) -> int:
    client_config = config.client
    if args.api_url:
        client_config.api_url = args.api_url

    async with ArchiveClient.from_config(client_config) as client:
        async with IngestionStatusTracker.from_config(client, config.tracker) as tracker:
            recent = RecentImageStore(
                JsonFileStorage(config.recent_images.path), capacity=config.recent_images.capacity
            )

            if args.command in ('search', 'search-image', 'recent'):
                video_filter = VideoFilterSelection(available=args.video)
                video_filter.select_all()
                orchestrator = SearchOrchestrator.from_config(
                    client, config.search, video_filter=video_filter, recent_images=recent
                )
                if args.max_results:
                    orchestrator.max_results = args.max_results
                if args.limit:
                    orchestrator.display_limit = args.limit
                frames, objects = not args.no_frames, not args.no_objects

                if args.command == 'search':
                    if await orchestrator.search_text(args.query, frames, objects) is None:
                        print("Please enter a search query", file=sys.stderr)
                        return 2
                    return _print_results(orchestrator)

                if args.command == 'search-image':
                    if not os.path.isfile(args.path):
                        print(f"Image not found: {args.path}", file=sys.stderr)
                        return 2
                    async with aiofiles.open(args.path, "rb") as f:
                        data = await f.read()
                    content_type = mimetypes.guess_type(args.path)[0]
                    if not content_type or not content_type.startswith("image/"):
                        print(f"Not an image: {args.path}", file=sys.stderr)
                        return 2
                    if await orchestrator.search_image(data, os.path.basename(args.path), content_type, frames, objects) is None:
                        print("Please select an image", file=sys.stderr)
                        return 2
                    return _print_results(orchestrator)

                if args.rerun is not None:
                    await orchestrator.run_recent(args.rerun, frames, objects)
                    return _print_results(orchestrator)
                if args.remove is not None:
                    removed = await recent.remove(args.remove)
                    print("Removed" if removed else f"No recent image with id {args.remove}")
                    return 0 if removed else 1
                if args.clear:
                    await recent.clear()
                    return 0
                for entry in await recent.list():
                    print(f"{entry.id}  {entry.captured_at:%Y-%m-%d %H:%M}  {entry.filename}")
                return 0

            if args.command == 'videos':
                if args.all:
                    for video in await client.list_videos():
                        print(f"{video.video_name}\t{video.status or ''}")
                else:
                    for name in await client.list_video_names(status="completed"):
                        print(name)
                return 0

            if args.command == 'status':
                job = await client.get_job_status(args.video_name)
                print(json.dumps(job.model_dump(mode="json"), indent=2))
                return 0

            if args.command in ('upload', 'process'):
                coordinator = UploadCoordinator(client, tracker)
                if args.command == 'upload':
                    name = await coordinator.upload_file(args.path)
                else:
                    name = await coordinator.process_url(args.video_name, args.source, args.url, args.fps)
                print(f"Processing started for {name}")
                if args.watch:
                    return await _watch(tracker, name)
                return 0

            if args.command == 'watch':
                return await _watch(tracker, args.video_name)

            if args.command == 'delete':
                await tracker.delete(args.video_name)
                print(f"Deleted {args.video_name}")
                return 0

            if args.command == 'stream-url':
                print(client.stream_url(args.video_name, args.start))
                return 0

            if args.command == 'health':
                print(json.dumps(await client.health(), indent=2))
                return 0

    return 2


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = ArchiveConfig()
    log_manager.configure(config.logging)
    if args.verbose:
        log_manager.disable_console()
        log_manager.enable_console(level="DEBUG")

    try:
        return asyncio.run(_run(args, config))
    except ArchiveException as e:
        print(f"Error: {ErrorHandler.user_message(e)}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
