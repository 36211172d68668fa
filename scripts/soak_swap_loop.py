#!/usr/bin/env python3
"""
Swap Loop Soak Script
=====================

Standalone script to exercise the capture -> swap -> anchor loop without
the HTTP surface.

This script:
    1. Loads an identity image and selects it
    2. Powers the session on and enables the persona
    3. Logs swap loop stats at a fixed interval
    4. Reports a final summary and optionally saves the last swapped frame

Prerequisites:
    - pip install -e .
    - For --capture opencv, a camera must be attached
    - For --inference gemini, GEMINI_API_KEY must be set

Usage:
    python scripts/soak_swap_loop.py --image face.jpg --duration 60
    python scripts/soak_swap_loop.py --capture opencv --inference gemini --image face.jpg
"""

import argparse
import asyncio
import logging
import os
import sys
import time
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from sasa_cam.capture import CaptureError, MockCaptureAdapter, OpenCVCaptureAdapter
from sasa_cam.codec import transportable_to_bytes
from sasa_cam.config import settings
from sasa_cam.identity import IdentityStore
from sasa_cam.inference import GeminiInferenceClient, MockInferenceClient
from sasa_cam.orchestrator import SessionContext, SwapOrchestrator
from sasa_cam.session import SessionController


logger = logging.getLogger(__name__)


async def run_soak(
    image: str,
    capture_backend: str,
    inference_backend: str,
    duration: int,
    interval: float,
    report_interval: int,
    output: str,
) -> dict:
    """
    Run the swap loop for a fixed duration.

    Args:
        image: Identity image (file path, http(s) URL or data URL)
        capture_backend: 'mock' or 'opencv'
        inference_backend: 'mock' or 'gemini'
        duration: Run time in seconds
        interval: Swap loop tick interval in seconds
        report_interval: Seconds between progress reports
        output: Path to save the last swapped frame to ('' to skip)

    Returns:
        Final swap loop metrics dict
    """
    logger.info("=" * 60)
    logger.info("Swap Loop Soak")
    logger.info("=" * 60)
    logger.info(f"Capture: {capture_backend}, inference: {inference_backend}")
    logger.info(f"Duration: {duration}s, tick interval: {interval}s")
    logger.info("=" * 60)

    if capture_backend == "opencv":
        capture = OpenCVCaptureAdapter(
            device_index=settings.capture.device_index,
            width=settings.capture.width,
            height=settings.capture.height,
        )
    else:
        capture = MockCaptureAdapter(width=settings.capture.width, height=settings.capture.height)

    if inference_backend == "gemini":
        inference = GeminiInferenceClient(
            api_key=settings.inference.api_key,
            base_url=settings.inference.base_url,
            swap_model=settings.inference.swap_model,
            refine_model=settings.inference.refine_model,
            timeout=settings.inference.request_timeout_sec,
        )
    else:
        inference = MockInferenceClient(delay_sec=0.5)

    store = IdentityStore(inference=inference, refine_instruction=settings.inference.refine_instruction)
    orchestrator = SwapOrchestrator(
        context=SessionContext(),
        capture=capture,
        inference=inference,
        interval=interval,
        request_timeout=settings.orchestrator.request_timeout_sec,
        frame_quality=settings.codec.frame_quality,
        acquire_timeout=settings.capture.acquire_timeout_sec,
    )
    controller = SessionController(store, orchestrator)

    start_time = time.time()
    try:
        identity = store.add(image, name="Soak")
        await store.wait_for_refinements()
        logger.info(f"Identity status: {store.get(identity.id).embedding_status.value}")

        store.select(identity.id)
        await controller.power_on()
        snapshot = await controller.persona_on()
        if snapshot.status.value != "SWAPPING":
            logger.error(f"Persona could not be enabled (target_ready={snapshot.target_ready})")

        last_report_time = start_time
        while time.time() - start_time < duration:
            if time.time() - last_report_time >= report_interval:
                metrics = orchestrator.metrics
                snapshot = controller.snapshot()
                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {time.time() - start_time:.0f}s)")
                logger.info(f"  Phase: {snapshot.phase.value}, busy: {snapshot.busy}")
                logger.info(f"  Requests: {metrics.requests}, successes: {metrics.successes}")
                logger.info(f"  Failures: {metrics.failures}, timeouts: {metrics.timeouts}")
                logger.info(f"  Skipped while busy: {metrics.skipped_busy}")
                logger.info(f"  Last latency: {metrics.last_latency_sec:.2f}s")
                last_report_time = time.time()

            await asyncio.sleep(0.5)

    except CaptureError as e:
        logger.error(f"Camera unavailable: {e}")
    except KeyboardInterrupt:
        logger.info("Soak interrupted by user")
    finally:
        anchor = controller.anchor
        await controller.shutdown()
        await store.close()
        await inference.aclose()

    if output and anchor is not None:
        _, data = transportable_to_bytes(anchor)
        Path(output).write_bytes(data)
        logger.info(f"Last swapped frame written to {output}")

    total_time = time.time() - start_time
    result = orchestrator.metrics.to_dict()

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    for name, value in result.items():
        logger.info(f"{name}: {value}")
    logger.info("=" * 60)

    if result["successes"] > 0:
        logger.info("SOAK PASSED - swaps completed")
    else:
        logger.error("SOAK FAILED - no successful swaps")

    return result


def main():
    parser = argparse.ArgumentParser(description="Soak test for the persona swap loop")
    parser.add_argument("--image", type=str, required=True, help="Identity image path or URL")
    parser.add_argument(
        "--capture",
        choices=["mock", "opencv"],
        default="mock",
        help="Capture backend (default: mock)",
    )
    parser.add_argument(
        "--inference",
        choices=["mock", "gemini"],
        default="mock",
        help="Inference backend (default: mock)",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Run time in seconds (default: 60)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.orchestrator.tick_interval_sec,
        help="Tick interval in seconds",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )
    parser.add_argument("--output", type=str, default="", help="Save the last swapped frame here")

    args = parser.parse_args()

    result = asyncio.run(run_soak(
        image=args.image,
        capture_backend=args.capture,
        inference_backend=args.inference,
        duration=args.duration,
        interval=args.interval,
        report_interval=args.report_interval,
        output=args.output,
    ))

    sys.exit(0 if result["successes"] > 0 else 1)


if __name__ == "__main__":
    main()
