"""
services/api_client.py

학습 플랫폼 백엔드(REST) 클라이언트.
Public API:
  - list_available_tests() -> List[AssessmentDefinition] : 응시 가능한(approved) 서술형 시험 목록
  - submit(payload) -> dict                               : 답안 제출 (SubmissionService 구현)

인증:
  - Authorization: Bearer <access_token>
  - 401 응답 시 refresh 토큰으로 /token/refresh/ 호출 후 원 요청을 1회 재시도
  - 갱신 실패 시 토큰을 비우고 AuthenticationError
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from config import BACKEND_API_URL, BACKEND_TIMEOUT
from qa_test_cbt.exceptions import AuthenticationError, CatalogError, SubmissionError
from qa_test_cbt.models.assessment import AssessmentDefinition
from qa_test_cbt.models.session_state import SubmissionPayload

logger = logging.getLogger(__name__)

CATALOG_ERROR_MESSAGE = "Failed to load available tests"
SUBMIT_ERROR_MESSAGE = "Failed to submit test"
SESSION_EXPIRED_MESSAGE = "Your login session has expired. Please log in again."


def _json_body(response: httpx.Response) -> Any:
    """JSON 본문. 비어 있거나 JSON이 아니면 None (프록시 HTML 페이지 등)."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> Optional[str]:
    """서버가 내려준 에러 메시지 (error 우선, 없으면 detail)."""
    body = _json_body(response)
    if isinstance(body, dict):
        message = body.get("error") or body.get("detail")
        if isinstance(message, str) and message:
            return message
    return None


class LearningApiClient:
    def __init__(
        self,
        base_url: str = BACKEND_API_URL,
        access_token: str = "",
        refresh_token: str = "",
        timeout: float = BACKEND_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.access_token = access_token
        self.refresh_token = refresh_token
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )

    def _auth_headers(self) -> Dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    def clear_tokens(self) -> None:
        self.access_token = ""
        self.refresh_token = ""

    async def _refresh(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/token/refresh/", json={"refresh": self.refresh_token})
        access = None
        if response.is_success:
            body = _json_body(response)
            if isinstance(body, dict):
                access = body.get("access")
        if not access:
            logger.warning(f"토큰 갱신 실패: HTTP {response.status_code}")
            self.clear_tokens()
            raise AuthenticationError(SESSION_EXPIRED_MESSAGE, status_code=401)
        self.access_token = access
        logger.info("액세스 토큰 갱신 완료")

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async with self._client() as client:
            response = await client.request(method, path, headers=self._auth_headers(), **kwargs)
            if response.status_code == 401 and self.refresh_token:
                await self._refresh(client)
                response = await client.request(method, path, headers=self._auth_headers(), **kwargs)
            return response

    # ── Public API ───────────────────────────────────────────────────────────

    async def list_available_tests(self) -> List[AssessmentDefinition]:
        """
        승인된(approved) 서술형 시험 목록을 가져온다.

        형식이 맞지 않는 항목은 건너뛴다 (전체 목록 실패로 만들지 않음).

        Raises:
            CatalogError:        네트워크 오류, 2xx가 아닌 응답, 목록이 아닌 본문.
            AuthenticationError: 토큰 만료 후 갱신 실패.
        """
        try:
            response = await self._request("GET", "/qa-tests/")
        except httpx.HTTPError as e:
            logger.error(f"시험 목록 요청 실패: {e}")
            raise CatalogError(CATALOG_ERROR_MESSAGE) from e

        if not response.is_success:
            logger.error(f"시험 목록 API 오류: HTTP {response.status_code}")
            raise CatalogError(_error_message(response) or CATALOG_ERROR_MESSAGE, response.status_code)

        data = _json_body(response)
        if isinstance(data, dict):
            # 페이지네이션 응답 ({"results": [...]}) 도 허용
            data = data.get("results")
        if not isinstance(data, list):
            logger.error(f"시험 목록 응답 형식 오류: HTTP {response.status_code}, {type(data).__name__}")
            raise CatalogError(CATALOG_ERROR_MESSAGE, response.status_code)

        tests: List[AssessmentDefinition] = []
        for item in data:
            if not isinstance(item, dict) or item.get("status") != "approved":
                continue
            try:
                tests.append(AssessmentDefinition.model_validate(item))
            except ValidationError as e:
                logger.warning(f"시험 {item.get('id')} 형식 오류로 제외: {e.error_count()}건")
        return tests

    async def submit(self, payload: SubmissionPayload) -> Dict[str, object]:
        """
        답안 제출.

        Raises:
            SubmissionError: 네트워크 오류, 인증 실패, 2xx가 아닌 응답.
                             서버가 error 메시지를 주면 그대로 담는다.
        """
        try:
            response = await self._request("POST", "/qa-submissions/submit/", json=payload.to_wire())
        except httpx.HTTPError as e:
            logger.error(f"제출 요청 실패: {e}")
            raise SubmissionError(SUBMIT_ERROR_MESSAGE) from e
        except AuthenticationError as e:
            raise SubmissionError(e.message, e.status_code) from e

        if not response.is_success:
            raise SubmissionError(_error_message(response) or SUBMIT_ERROR_MESSAGE, response.status_code)

        # 2xx면 접수된 것으로 본다. 본문이 JSON이 아니면 빈 영수증
        body = _json_body(response)
        if not isinstance(body, dict):
            if response.content:
                logger.warning(f"제출 응답 본문이 JSON 객체가 아님: HTTP {response.status_code}")
            return {}
        return body
