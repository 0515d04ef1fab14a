"""
errors.py

시험 세션에서 발생하는 예외 분류.
API 계층은 이 예외들을 HTTP 상태 코드로 변환한다.
"""


class ExamError(Exception):
    """모든 시험/감독 예외의 기반 클래스."""


class PermissionDenied(ExamError):
    """카메라/마이크/화면 공유 권한 거부. 권한 확보 단계를 벗어날 수 없다."""

    def __init__(self, device: str, message: str = ""):
        self.device = device
        super().__init__(message or f"{device} 권한이 거부되었습니다.")


class WrongShareSurface(PermissionDenied):
    """화면 공유는 허용되었지만 전체 화면(monitor)이 아닌 창/탭을 공유한 경우."""

    def __init__(self, surface: str):
        self.surface = surface
        super().__init__(
            "screen",
            f"창이나 탭이 아닌 전체 화면을 공유해야 합니다 (선택된 화면 유형: {surface or 'unknown'}).",
        )


class SamplingInfrastructureFailure(ExamError):
    """비전 분석 호출 실패/타임아웃. 위반이 아니며 해당 틱은 샘플 없음으로 취급한다."""


class InvalidTransition(ExamError):
    """현재 세션 상태에서 허용되지 않는 작업."""

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"'{operation}' 작업은 '{state}' 상태에서 허용되지 않습니다.")


class AnswerEntryBlocked(ExamError):
    """일시정지 중이거나 답안지가 동결된 상태에서 답안 입력 시도."""


class QuizNotFound(ExamError):
    """퀴즈 저장소에 해당 ID가 없음."""

    def __init__(self, quiz_id: str):
        self.quiz_id = quiz_id
        super().__init__(f"퀴즈를 찾을 수 없습니다: {quiz_id}")
