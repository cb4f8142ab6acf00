from abc import ABC, abstractmethod
import logging
from typing import Mapping, Optional

import requests

from .errors import TransportError
from .model import Response


logger = logging.getLogger(__name__)


class Transport(ABC):
    """
    Executes one HTTP exchange.
    """

    @abstractmethod
    def execute(self, method: str, url: str, headers: Mapping[str, str], body: bytes) -> Response:
        """
        @return
          The response, whatever its status.
        @throws TransportError
          If no response could be obtained.
        """

    def close(self):
        """
        Close any resources associated with the transport.
        """


class RequestsTransport(Transport):
    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None) -> None:
        self.__session = session if session is not None else requests.Session()
        self.__timeout = timeout

    def execute(self, method: str, url: str, headers: Mapping[str, str], body: bytes) -> Response:
        logger.info('Sending {} {}'.format(method, url))
        try:
            requests_response = self.__session.request(method, url,
                                                       headers=dict(headers),
                                                       data=body or None,
                                                       timeout=self.__timeout)
        except requests.RequestException as e:
            raise TransportError('{} {} failed: {}'.format(method, url, e)) from e

        return Response(status=requests_response.status_code,
                        reason=requests_response.reason or '',
                        headers=dict(requests_response.headers),
                        body=requests_response.content)

    def close(self):
        self.__session.close()
