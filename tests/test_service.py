import tempfile
import threading
import time
import unittest
from pathlib import Path

import numpy as np

from fakes import BlockingBackend, FakeBackend, FakeEngineFactory, detector_output, pose_output
from footy_kit.config import PipelineConfig, RuntimeConfig
from footy_kit.errors import ModelNotLoadedError
from footy_kit.service import BallDetectionService, FootyDetector, PoseDetectionService
from footy_kit.types import FramePlanes


LABELS = "person\nbicycle\nsports ball\n"

BOXES = [
    (0.10, 0.10, 0.10, 0.10),
    (0.20, 0.20, 0.10, 0.10),
    (0.50, 0.40, 0.20, 0.10),
    (0.80, 0.80, 0.10, 0.10),
]


def _ball_scores(values):
    scores = np.zeros((3, 4), dtype=np.float32)
    scores[2] = values
    return scores


def _gray_frame(value: int = 128, width: int = 4, height: int = 4) -> FramePlanes:
    return FramePlanes(y=bytes([value]) * (width * height), width=width, height=height)


class _ServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        (self.root / "yolo.onnx").write_bytes(b"model")
        (self.root / "movenet.onnx").write_bytes(b"model")
        (self.root / "labels.txt").write_text(LABELS, encoding="utf-8")
        self.runtime = RuntimeConfig(model_root=str(self.root))


class TestBallDetectionService(_ServiceTestCase):
    def _service(self, output=None, **backend_kwargs):
        output = output if output is not None else detector_output(BOXES, _ball_scores([0.05, 0.05, 0.4, 0.05]))
        factory = FakeEngineFactory(lambda: FakeBackend([output], **backend_kwargs))
        return BallDetectionService(runtime=self.runtime, engine_factory=factory), factory

    def test_load_and_detect(self) -> None:
        service, factory = self._service()
        result = service.load("assets/yolo.onnx", "assets/labels.txt", use_accelerator=True)
        self.assertTrue(result.ok)
        self.assertEqual(result.tier, "accelerated")
        self.assertEqual(service.target_class, 2)

        out = service.detect(_gray_frame())
        self.assertIsNone(out.error)
        self.assertEqual(len(out.detections), 1)
        self.assertTrue(np.allclose(out.detections[0].box, (0.40, 0.35, 0.60, 0.45), atol=1e-6))
        self.assertGreaterEqual(out.processing_time_ms, 0.0)
        self.assertEqual(service.latency.frame_count, 1)

        payload = out.to_dict()
        self.assertEqual(set(payload), {"detections", "processingTimeMs"})
        self.assertEqual(payload["detections"][0]["tag"], "soccer_ball")

    def test_packed_tensor_reaches_engine(self) -> None:
        service, factory = self._service()
        service.load("yolo.onnx", "labels.txt")
        service.detect(_gray_frame(value=51))
        tensor = factory.backends[0].inputs[0]
        self.assertEqual(tensor.shape, (1, 4, 4, 3))
        self.assertEqual(tensor.dtype, np.float32)
        self.assertTrue(np.allclose(tensor, 51 / 255.0))

    def test_stage_timings_are_logged(self) -> None:
        service, _ = self._service()
        service.load("yolo.onnx", "labels.txt")
        with self.assertLogs("footy_kit.runtime", level="DEBUG") as logs:
            service.detect(_gray_frame())
        messages = "\n".join(logs.output)
        self.assertIn("Preprocess 4x4 frame took", messages)
        self.assertIn("Inference on", messages)

    def test_quantized_model_gets_uint8(self) -> None:
        service, factory = self._service(dtype=np.uint8)
        service.load("yolo.onnx", "labels.txt")
        service.detect(_gray_frame(value=51))
        tensor = factory.backends[0].inputs[0]
        self.assertEqual(tensor.dtype, np.uint8)
        self.assertTrue(np.all(tensor == 51))

    def test_no_ball_is_not_an_error(self) -> None:
        output = detector_output(BOXES, _ball_scores([0.0, 0.05, 0.1, 0.02]))
        service, _ = self._service(output=output)
        service.load("yolo.onnx", "labels.txt")
        out = service.detect(_gray_frame())
        self.assertEqual(out.detections, [])
        self.assertIsNone(out.error)

    def test_labels_without_ball_class(self) -> None:
        (self.root / "labels.txt").write_text("person\ncar\n", encoding="utf-8")
        output = detector_output(BOXES, np.full((2, 4), 0.9, dtype=np.float32))
        service, _ = self._service(output=output)
        self.assertTrue(service.load("yolo.onnx", "labels.txt").ok)
        self.assertIsNone(service.target_class)
        self.assertEqual(service.detect(_gray_frame()).detections, [])

    def test_conversion_error_returns_error_payload(self) -> None:
        service, factory = self._service()
        service.load("yolo.onnx", "labels.txt")
        out = service.detect(FramePlanes(y=bytes(3), width=4, height=4))
        self.assertEqual(out.detections, [])
        self.assertIsNotNone(out.error)
        self.assertIn("error", out.to_dict())
        self.assertEqual(factory.backends[0].inputs, [])
        self.assertEqual(service.latency.frame_count, 0)

    def test_inference_error_keeps_model_loaded(self) -> None:
        service, factory = self._service()
        service.load("yolo.onnx", "labels.txt")
        factory.backends[0].fail_next = True
        out = service.detect(_gray_frame())
        self.assertEqual(out.detections, [])
        self.assertIsNotNone(out.error)
        self.assertTrue(service.loaded)
        self.assertEqual(service.latency.frame_count, 0)

        out = service.detect(_gray_frame())
        self.assertEqual(len(out.detections), 1)
        self.assertEqual(service.latency.frame_count, 1)

    def test_reload_resets_latency_and_releases_old_model(self) -> None:
        service, factory = self._service()
        service.load("yolo.onnx", "labels.txt")
        service.detect(_gray_frame())
        service.detect(_gray_frame())
        self.assertEqual(service.latency.frame_count, 2)

        service.load("yolo.onnx", "labels.txt")
        self.assertEqual(service.latency.frame_count, 0)
        self.assertEqual(factory.backends[0].close_calls, 1)
        service.detect(_gray_frame())
        self.assertEqual(service.latency.frame_count, 1)

    def test_detect_before_load(self) -> None:
        service, _ = self._service()
        with self.assertRaises(ModelNotLoadedError):
            service.detect(_gray_frame())

    def test_dispose_is_idempotent(self) -> None:
        service, factory = self._service()
        service.load("yolo.onnx", "labels.txt")
        service.dispose()
        service.dispose()
        self.assertFalse(service.loaded)
        self.assertEqual(factory.backends[0].close_calls, 1)
        with self.assertRaises(ModelNotLoadedError):
            service.detect(_gray_frame())

    def test_load_failures_leave_role_unloaded(self) -> None:
        service, _ = self._service()
        result = service.load("yolo.onnx", "missing.txt")
        self.assertFalse(result.ok)
        self.assertIn("missing.txt", result.reason)
        self.assertFalse(service.loaded)

        result = service.load("missing.onnx", "labels.txt")
        self.assertFalse(result.ok)
        self.assertFalse(service.loaded)

    def test_wrong_output_contract_rejected(self) -> None:
        service, factory = self._service(output=np.zeros((1, 4, 10), dtype=np.float32))
        result = service.load("yolo.onnx", "labels.txt")
        self.assertFalse(result.ok)
        self.assertFalse(service.loaded)
        self.assertEqual(factory.backends[0].close_calls, 1)

    def test_all_tiers_failing_is_a_structured_failure(self) -> None:
        factory = FakeEngineFactory(lambda: FakeBackend([pose_output()]), fail_tiers=("platform", "minimal"))
        service = BallDetectionService(runtime=self.runtime, engine_factory=factory)
        result = service.load("yolo.onnx", "labels.txt")
        self.assertFalse(result.ok)
        self.assertIn("minimal", result.reason)
        self.assertFalse(service.loaded)


class TestPoseDetectionService(_ServiceTestCase):
    def _service(self, output=None):
        output = output if output is not None else pose_output()
        factory = FakeEngineFactory(lambda: FakeBackend([output], input_shape=(1, 8, 8, 3), dtype=np.uint8))
        return PoseDetectionService(runtime=self.runtime, engine_factory=factory), factory

    def test_no_confident_keypoints(self) -> None:
        service, _ = self._service()
        self.assertTrue(service.load("movenet.onnx").ok)
        out = service.detect(_gray_frame())
        self.assertIsNone(out.error)
        self.assertEqual(out.detections, [])
        self.assertEqual(len(out.keypoints), 17)
        self.assertGreaterEqual(out.inference_time_ms, 0.0)
        self.assertEqual(set(out.to_dict()), {"detections", "processingTimeMs", "inferenceTimeMs", "keypoints"})

    def test_person_with_front_camera(self) -> None:
        rows = [(0.5, 0.25, 0.9)] + [(0.0, 0.0, 0.0)] * 16
        service, factory = self._service(pose_output(rows))
        service.load("movenet.onnx")
        out = service.detect(_gray_frame(width=8, height=4), rotation=90, is_front_camera=True)
        self.assertEqual(len(out.detections), 1)
        self.assertAlmostEqual(out.keypoints[0].x, 0.75, places=6)
        self.assertTrue(np.allclose(out.detections[0].box, (0.70, 0.45, 0.80, 0.55), atol=1e-6))
        self.assertEqual(factory.backends[0].inputs[0].shape, (1, 8, 8, 3))
        self.assertEqual(service.latency.frame_count, 1)

    def test_completed_inference_counts_even_if_decoding_fails(self) -> None:
        # Dynamic output shape passes the load check; the frame's output is one keypoint short.
        bad = np.zeros((1, 1, 16, 3), dtype=np.float32)
        factory = FakeEngineFactory(lambda: FakeBackend([bad], output_shapes=[(1, 1, "keypoints", 3)]))
        service = PoseDetectionService(runtime=self.runtime, engine_factory=factory)
        self.assertTrue(service.load("movenet.onnx").ok)

        out = service.detect(_gray_frame())
        self.assertIsNotNone(out.error)
        self.assertEqual(out.detections, [])
        self.assertEqual(len(factory.backends[0].inputs), 1)
        self.assertEqual(service.latency.frame_count, 1)
        self.assertEqual(out.inference_time_ms, service.latency.total_ms)
        self.assertEqual(out.to_dict()["inferenceTimeMs"], service.latency.total_ms)

    def test_invalid_rotation_is_a_frame_error(self) -> None:
        service, _ = self._service()
        service.load("movenet.onnx")
        out = service.detect(_gray_frame(), rotation=45)
        self.assertIsNotNone(out.error)
        self.assertEqual(out.detections, [])

    def test_missing_model_path(self) -> None:
        service, _ = self._service()
        self.assertFalse(service.load(None).ok)
        self.assertFalse(service.load("nope.onnx").ok)

    def test_wrong_pose_output_rejected(self) -> None:
        service, _ = self._service(np.zeros((1, 1, 33, 3), dtype=np.float32))
        self.assertFalse(service.load("movenet.onnx").ok)


class TestFootyDetector(_ServiceTestCase):
    def test_roles_are_independent(self) -> None:
        ball_output = detector_output(BOXES, _ball_scores([0.0, 0.5, 0.0, 0.0]))

        def factory(model_path, cfg):
            # Route by file name so each role gets its own output contract.
            return FakeBackend([ball_output if model_path.name == "yolo.onnx" else pose_output()])

        detector = FootyDetector(PipelineConfig(runtime=self.runtime), engine_factory=factory)
        self.assertTrue(detector.load_detector("yolo.onnx", "labels.txt").ok)
        self.assertTrue(detector.load_pose("movenet.onnx").ok)

        self.assertEqual(len(detector.detect_ball(_gray_frame()).detections), 1)
        self.assertEqual(detector.detect_pose(_gray_frame()).detections, [])

        detector.dispose_pose()
        self.assertFalse(detector.pose.loaded)
        self.assertTrue(detector.ball.loaded)
        with self.assertRaises(ModelNotLoadedError):
            detector.detect_pose(_gray_frame())

        with detector:
            pass
        self.assertFalse(detector.ball.loaded)

    def test_one_role_serialized_other_role_concurrent(self) -> None:
        ball_output = detector_output(BOXES, _ball_scores([0.0, 0.5, 0.0, 0.0]))
        ball_backend = BlockingBackend([ball_output])

        def factory(model_path, cfg):
            return ball_backend if model_path.name == "yolo.onnx" else FakeBackend([pose_output()])

        detector = FootyDetector(PipelineConfig(runtime=self.runtime), engine_factory=factory)
        self.addCleanup(detector.close)
        self.addCleanup(ball_backend.release.set)
        self.assertTrue(detector.load_detector("yolo.onnx", "labels.txt").ok)
        self.assertTrue(detector.load_pose("movenet.onnx").ok)

        results = []

        def run_ball():
            results.append(detector.detect_ball(_gray_frame()))

        first = threading.Thread(target=run_ball)
        first.start()
        self.assertTrue(ball_backend.entered.wait(timeout=5.0))
        second = threading.Thread(target=run_ball)
        second.start()
        time.sleep(0.05)
        # The second ball call waits on the role lock and never reaches the engine.
        self.assertEqual(ball_backend.calls, 1)

        # The pose role is not blocked by the busy ball role.
        pose = detector.detect_pose(_gray_frame())
        self.assertIsNone(pose.error)
        self.assertEqual(ball_backend.in_flight, 1)

        ball_backend.release.set()
        first.join(timeout=5.0)
        second.join(timeout=5.0)
        self.assertFalse(first.is_alive() or second.is_alive())
        self.assertEqual(ball_backend.calls, 2)
        self.assertEqual(ball_backend.max_in_flight, 1)
        self.assertEqual([len(r.detections) for r in results], [1, 1])
        self.assertEqual(detector.ball.latency.frame_count, 2)


if __name__ == "__main__":
    unittest.main()
