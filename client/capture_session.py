"""Capture and submit flow of the analysis screen.

The screen's data state is a single tagged value:

    Idle -> ImageSelected -> Submitting -> Succeeded | Failed

``Failed`` keeps the image so the user can retry without re-capturing.
Camera preview is a separate UI mode (``camera_open``), not a data state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Optional, Protocol, Union

from client.history_store import HistoryEntry, HistoryStore
from logging_config import get_logger
from services.response_extractor import AnalysisResult

logger = get_logger()


@dataclass(frozen=True)
class CapturedImage:
    uri: str
    base64: str


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class ImageSelected:
    image: CapturedImage


@dataclass(frozen=True)
class Submitting:
    image: CapturedImage


@dataclass(frozen=True)
class Succeeded:
    image: CapturedImage
    result: AnalysisResult


@dataclass(frozen=True)
class Failed:
    image: CapturedImage
    error: str


SessionState = Union[Idle, ImageSelected, Submitting, Succeeded, Failed]


class ImpactStyle(Enum):
    LIGHT = "light"
    MEDIUM = "medium"


class FeedbackType(Enum):
    SUCCESS = "success"
    ERROR = "error"


class Analyzer(Protocol):
    def analyze(self, image_base64: str) -> Awaitable[AnalysisResult]: ...


class Haptics(Protocol):
    def impact(self, style: ImpactStyle) -> None: ...

    def notify(self, feedback: FeedbackType) -> None: ...


class Navigator(Protocol):
    def show_result(self, image: CapturedImage, result: AnalysisResult) -> None: ...


class NoHaptics:
    def impact(self, style: ImpactStyle) -> None:
        pass

    def notify(self, feedback: FeedbackType) -> None:
        pass


class CaptureSession:
    def __init__(
        self,
        analyzer: Analyzer,
        haptics: Optional[Haptics] = None,
        navigator: Optional[Navigator] = None,
        history: Optional[HistoryStore] = None,
    ):
        self.analyzer = analyzer
        self.haptics = haptics or NoHaptics()
        self.navigator = navigator
        self.history = history
        self.state: SessionState = Idle()
        self.camera_open = False

    # -- image acquisition ------------------------------------------------

    def open_camera(self):
        self.camera_open = True

    def close_camera(self):
        self.camera_open = False

    def capture(self, image: CapturedImage) -> bool:
        """A photo was taken in camera mode."""
        self.haptics.impact(ImpactStyle.MEDIUM)
        accepted = self._select(image)
        if accepted:
            self.camera_open = False
        return accepted

    def pick(self, image: Optional[CapturedImage]) -> bool:
        """An image came back from the gallery; ``None`` means the user cancelled."""
        self.haptics.impact(ImpactStyle.LIGHT)
        if image is None:
            return False
        return self._select(image)

    def _select(self, image: CapturedImage) -> bool:
        if isinstance(self.state, Submitting) or not image.base64:
            return False
        self.state = ImageSelected(image)
        return True

    def clear(self):
        if isinstance(self.state, (ImageSelected, Failed)):
            self.haptics.impact(ImpactStyle.LIGHT)
            self.state = Idle()

    # -- submission -------------------------------------------------------

    @property
    def is_submitting(self) -> bool:
        return isinstance(self.state, Submitting)

    async def submit(self) -> Optional[AnalysisResult]:
        """Send the selected image for analysis.

        Ignored unless an image is selected (or a failed attempt is being
        retried); triggers fired while a request is in flight do nothing.
        """
        if not isinstance(self.state, (ImageSelected, Failed)):
            return None

        image = self.state.image
        # Set before the first await so overlapping triggers see it
        self.state = Submitting(image)
        self.haptics.impact(ImpactStyle.MEDIUM)

        try:
            result = await self.analyzer.analyze(image.base64)
        except Exception as e:
            message = str(e) or "Analysis failed"
            logger.error(f"Roast analysis request failed: {message}", exc_info=True)
            self.state = Failed(image, message)
            self.haptics.notify(FeedbackType.ERROR)
            return None

        self.state = Succeeded(image, result)
        self.haptics.notify(FeedbackType.SUCCESS)
        if self.navigator is not None:
            self.navigator.show_result(image, result)
        return result

    # -- after a result ---------------------------------------------------

    async def save_result(self) -> Optional[HistoryEntry]:
        """Store the current result in history and go back to Idle."""
        if not isinstance(self.state, Succeeded):
            return None
        if self.history is None:
            raise RuntimeError("No history store configured")

        self.haptics.notify(FeedbackType.SUCCESS)
        entry = await self.history.record(self.state.image.base64, self.state.result)
        self.state = Idle()
        return entry

    def analyze_another(self):
        if isinstance(self.state, (Succeeded, Failed)):
            self.haptics.impact(ImpactStyle.LIGHT)
            self.state = Idle()

    def leave(self):
        """The user navigated away from the screen."""
        self.camera_open = False
        if isinstance(self.state, (Succeeded, Failed)):
            self.state = Idle()
