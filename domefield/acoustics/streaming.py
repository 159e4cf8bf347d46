"""
Real-time Streaming Module

This module contains helpers for feeding continuous audio into a
PipelineController: a function that processes a long signal block by block,
and the DomeStreamProcessor class that runs passes on a worker thread.
"""

import logging
import queue
import threading
from typing import Optional, Sequence, Union

import numpy as np

from .core import PipelineController
from .config import DEFAULT_HISTORY_CAPACITY
from .exceptions import StreamingError, DomeFieldError

logger = logging.getLogger(__name__)


def process_signal(controller: PipelineController, signal: Union[Sequence[float], np.ndarray],
                   block_size: int = DEFAULT_HISTORY_CAPACITY) -> np.ndarray:
    """
    Process a long signal through a pipeline one block at a time.

    Args:
        controller: Pipeline to run
        signal: Real-valued audio samples
        block_size: Samples per block; the final block may be shorter

    Returns:
        Concatenated processed blocks, same length as ``signal``
    """
    if block_size < 1:
        raise StreamingError(f"Block size must be positive, got {block_size}")

    samples = np.asarray(signal, dtype=np.float64).ravel()
    blocks = [controller.process_block(samples[start:start + block_size])
              for start in range(0, samples.size, block_size)]

    if not blocks:
        return np.zeros(0)
    return np.concatenate(blocks)


class DomeStreamProcessor:
    """
    Real-time block processor for a dome pipeline.

    Blocks submitted from any thread are queued and processed in order by a
    single worker thread, so every pass on the controller is serialized.
    """

    def __init__(self, controller: PipelineController, block_size: int = DEFAULT_HISTORY_CAPACITY):
        """
        Initialize the stream processor.

        Args:
            controller: Pipeline that processes each block
            block_size: Expected block size in samples; longer blocks are rejected
        """
        if block_size < 1:
            raise StreamingError(f"Block size must be positive, got {block_size}")

        self.controller = controller
        self.block_size = block_size

        self.processing_queue = queue.Queue()
        self.output_queue = queue.Queue()
        self.running = False
        self.processing_thread = None
        self.dropped_blocks = 0
        self._worker_active = False
        self._state_lock = threading.Lock()

    def start(self) -> None:
        """Start the real-time processing thread."""
        with self._state_lock:
            if self.running:
                return
            self.running = True

            # A worker still draining after a timed-out stop() is reused
            if self._worker_active:
                return

            self._worker_active = True
            self.processing_thread = threading.Thread(target=self._processing_loop)
            self.processing_thread.daemon = True
            self.processing_thread.start()
        logger.info("Stream processor started (block size %d)", self.block_size)

    def stop(self, timeout: float = 1.0) -> None:
        """
        Stop the real-time processing thread after the queued blocks are done.

        Args:
            timeout: Seconds to wait for the worker to finish
        """
        with self._state_lock:
            if not self.running:
                return
            self.running = False
            thread = self.processing_thread

        self.processing_queue.put(None)
        if thread is not None:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Stream processor worker still busy after %.1f s", timeout)
                return

        with self._state_lock:
            if not self._worker_active:
                self.processing_thread = None
        logger.info("Stream processor stopped")

    def submit(self, block: Union[Sequence[float], np.ndarray]) -> None:
        """
        Queue an audio block for processing.

        Args:
            block: Real-valued audio samples, at most ``block_size`` long

        Raises:
            StreamingError: If the processor is not running or the block is too long
        """
        if not self.running:
            raise StreamingError("Stream processor is not running")

        samples = np.asarray(block, dtype=np.float64).ravel()
        if samples.size > self.block_size:
            raise StreamingError(f"Block of {samples.size} samples exceeds block size {self.block_size}")

        self.processing_queue.put(samples)

    def get_output(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        """
        Get the next processed block.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Returns:
            The processed block, or None if nothing arrived in time
        """
        try:
            return self.output_queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def _processing_loop(self) -> None:
        """Main processing loop for real-time audio."""
        while True:
            block = self.processing_queue.get()
            if block is None:
                with self._state_lock:
                    if not self.running:
                        self._worker_active = False
                        break
                continue

            try:
                self.output_queue.put(self.controller.process_block(block))
            except DomeFieldError as e:
                self.dropped_blocks += 1
                logger.warning("Dropped block of %d samples: %s", block.size, e)
            except Exception:
                self.dropped_blocks += 1
                logger.exception("Unexpected error processing block of %d samples", block.size)
