"""
Inference engine adapters.

An engine owns its model session behind a single worker thread. Every load,
swap and inference call is queued onto that thread, so calls are serialized
no matter how many batch workers share the engine.

All engines share the same interface:
  load_model(path)      - load or swap the active model
  infer(tensor)         - run inference on a [1, 3, S, S] tensor
  model_info()          - describe the active model
  close()               - release resources
"""

import abc
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import Any

import numpy as np
import onnxruntime as ort

from skinscreen.core.errors import AnalysisTimeoutError, InferenceError, ModelLoadError

logger = logging.getLogger(__name__)


class InferenceEngine(abc.ABC):
    """Common interface every engine must implement."""

    def __init__(self):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")
        self._model_path: str | None = None
        self._closed = False
        self._abandoned = False  # A call timed out and may still be running

    @property
    def model_path(self) -> str | None:
        return self._model_path

    @property
    def loaded(self) -> bool:
        return self._model_path is not None

    @abc.abstractmethod
    def _load(self, model_path: str) -> None:
        """Load a model. Runs on the engine thread."""

    @abc.abstractmethod
    def _run(self, tensor: np.ndarray) -> np.ndarray:
        """Run one inference. Runs on the engine thread."""

    def _describe(self) -> dict[str, Any]:
        return {}

    def load_model(self, model_path: str, timeout: float | None = None) -> None:
        """
        Load or swap the active model.

        The swap is queued behind any in-flight inference, so a running call
        always finishes on the model it started with.

        Raises:
            ModelLoadError: If the file is missing or cannot be loaded
            AnalysisTimeoutError: If loading does not finish within timeout
        """
        def swap():
            self._load(model_path)
            previous = self._model_path
            self._model_path = model_path
            if previous and previous != model_path:
                logger.info(f"Swapped model {previous} -> {model_path}")
            else:
                logger.info(f"Model loaded: {model_path}")

        self._wait(self._submit(swap), timeout, f"loading model {model_path}")

    def ensure_model(self, model_path: str, timeout: float | None = None) -> None:
        """Swap to model_path only if it is not already active."""
        if model_path != self._model_path:
            self.load_model(model_path, timeout=timeout)

    def infer(self, tensor: np.ndarray, timeout: float | None = None) -> np.ndarray:
        """
        Run inference on a [1, 3, S, S] float32 tensor.

        Args:
            tensor: Detector input blob
            timeout: Seconds to wait for the result (None waits forever)

        Returns:
            Raw output array, [1, 4 + num_classes, num_predictions]

        Raises:
            ModelLoadError: If no model is loaded
            InferenceError: If the engine fails at runtime
            AnalysisTimeoutError: If the call does not finish within timeout
        """
        def run():
            if self._model_path is None:
                raise ModelLoadError("No model loaded")
            return self._run(tensor)

        return self._wait(self._submit(run), timeout, "inference")

    def model_info(self) -> dict[str, Any]:
        info = {"model_path": self._model_path, "engine": type(self).__name__}
        info.update(self._describe())
        return info

    def close(self) -> None:
        """
        Release resources.

        Queued calls are finished first, unless a call has already timed out:
        then pending calls are cancelled and the stuck one is not waited for.
        """
        if self._closed:
            return
        self._closed = True
        if self._abandoned:
            logger.warning(f"{type(self).__name__} closing with a timed-out call still running")
            self._executor.shutdown(wait=False, cancel_futures=True)
        else:
            self._executor.shutdown(wait=True)
        logger.debug(f"{type(self).__name__} closed")

    def _submit(self, fn) -> Future:
        if self._closed:
            raise InferenceError("Engine is closed")
        return self._executor.submit(fn)

    def _wait(self, future: Future, timeout: float | None, what: str):
        try:
            return future.result(timeout=timeout)
        except FutureTimeout as e:
            if future.done():
                raise
            if not future.cancel():
                self._abandoned = True
            raise AnalysisTimeoutError(f"{what} did not finish within {timeout:.1f}s") from e

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class OnnxInferenceEngine(InferenceEngine):
    """YOLO-style detector served by ONNX Runtime on the CPU."""

    def __init__(self, model_path: str | None = None):
        super().__init__()
        self._session = None
        self._input_name: str | None = None
        if model_path is not None:
            self.load_model(model_path)

    def _load(self, model_path: str) -> None:
        if not Path(model_path).is_file():
            raise ModelLoadError(f"Model file not found: {model_path}")

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_BASIC
        try:
            session = ort.InferenceSession(
                model_path, sess_options=options, providers=["CPUExecutionProvider"]
            )
        except Exception as e:
            raise ModelLoadError(f"Cannot load model {model_path}: {e}") from e

        self._session = session
        self._input_name = session.get_inputs()[0].name

    def _run(self, tensor: np.ndarray) -> np.ndarray:
        try:
            outputs = self._session.run(None, {self._input_name: tensor.astype(np.float32)})
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e
        return np.asarray(outputs[0])

    def _describe(self) -> dict[str, Any]:
        if self._session is None:
            return {}
        return {
            "inputs": [i.name for i in self._session.get_inputs()],
            "outputs": [o.name for o in self._session.get_outputs()],
        }

    def close(self) -> None:
        super().close()
        self._session = None
