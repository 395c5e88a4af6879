#!/usr/bin/env python3
"""
Video Proxy - Main Entry Point

Usage:
    # Start the HTTP server
    python main.py server

    # Generate a single video and wait for it
    python main.py generate --prompt "A paper boat drifting down a rainy street"

    # Check an existing job
    python main.py status task_01jx...
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("videoproxy")


def start_server(host: str, port: int, reload: bool = False):
    """Run the FastAPI app under uvicorn."""
    import uvicorn

    logger.info(f"Video proxy running at http://{host}:{port}")
    logger.info(f"Health check: http://{host}:{port}/health")
    uvicorn.run(
        "services.gateway.server:app",
        host=host,
        port=port,
        reload=reload,
    )


async def generate_video(
    prompt: str,
    model: Optional[str] = None,
    seconds: Optional[int] = None,
    output_dir: Optional[str] = None,
) -> Optional[str]:
    """
    Submit a prompt, poll until the job finishes and optionally download it.

    Returns the local file path (or the video URL when not downloading),
    None if the job did not succeed.
    """
    import aiofiles

    from core.config import get_config
    from services.video_generation import PollState, StatusPoller, VideoGenerationClient

    config = get_config()
    for issue in config.validate():
        logger.warning(f"Configuration issue: {issue}")

    client = VideoGenerationClient(config)
    try:
        params = client.default_params().with_overrides(model=model, n_seconds=seconds)
        submitted = await client.submit(prompt, params)
        logger.info(f"Job {submitted.job_id} submitted ({submitted.status})")

        poller = StatusPoller.from_config(client, config)
        outcome = await poller.run(submitted.job_id)

        if outcome.state != PollState.SUCCEEDED:
            logger.error(f"Job {submitted.job_id} ended as {outcome.state.value}: {outcome.error}")
            return None

        status = await client.fetch_status(submitted.job_id)
        if not output_dir:
            url = client.resolve_video_url(status)
            logger.info(f"Video ready: {url}")
            return url

        content = await client.fetch_content(submitted.job_id, outcome.generation_id)
        path = Path(output_dir) / f"video-{submitted.job_id}.mp4"
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(content)
        logger.info(f"Video saved: {path}")
        return str(path)

    finally:
        await client.close()


async def show_status(job_id: str) -> bool:
    """Print one upstream status read for a job."""
    from services.video_generation import VideoGenerationClient
    from services.video_generation.status import get_progress, get_status_message

    client = VideoGenerationClient()
    try:
        status = await client.fetch_status(job_id)
    except Exception as e:
        print(f"Status check failed: {e}")
        return False
    finally:
        await client.close()

    url = client.resolve_video_url(status)
    print(f"Job:      {status.job_id}")
    print(f"Status:   {status.status} ({get_progress(status.status)}%)")
    print(f"Message:  {get_status_message(status.status, url is not None)}")
    if status.prompt:
        print(f"Prompt:   {status.prompt}")
    if url:
        print(f"Video:    {url}")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Video Proxy - text-to-video generation backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start the server
    python main.py server --port 3000

    # Generate a video and save it locally
    python main.py generate --prompt "Sunrise over a foggy harbor" --output ./videos

    # Check a job
    python main.py status task_01jx...
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start HTTP server")
    server_parser.add_argument("--host", default=None, help="Host to bind")
    server_parser.add_argument("--port", type=int, default=None, help="Port to bind")
    server_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Generate a video")
    gen_parser.add_argument("--prompt", "-p", required=True, help="Video prompt")
    gen_parser.add_argument("--model", "-m", help="Upstream model/deployment name")
    gen_parser.add_argument("--seconds", "-s", type=int, help="Video length in seconds")
    gen_parser.add_argument("--output", "-o", help="Directory to download the video into")

    # Status command
    status_parser = subparsers.add_parser("status", help="Check a job's status")
    status_parser.add_argument("job_id", help="Upstream job id")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "server":
        from core.config import get_config

        server = get_config().server
        start_server(
            host=args.host or server.host,
            port=args.port or server.port,
            reload=args.reload,
        )

    elif args.command == "generate":
        result = asyncio.run(
            generate_video(
                prompt=args.prompt,
                model=args.model,
                seconds=args.seconds,
                output_dir=args.output,
            )
        )
        sys.exit(0 if result else 1)

    elif args.command == "status":
        ok = asyncio.run(show_status(args.job_id))
        sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
