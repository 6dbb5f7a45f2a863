"""
Bufferização do texto recebido em streaming.

A API de busca envia fragmentos muito pequenos (às vezes meia palavra).
O SentenceBuffer agrupa esses fragmentos e só libera texto em fim de frase,
ou quando o buffer fica grande demais / parado tempo demais.
"""
import re
import time
from typing import Callable, List, Optional

# Fim de frase: pontuação, aspas/parênteses de fechamento opcionais, espaço em seguida
SENTENCE_END_RE = re.compile(r"[.!?][\"')\]”’]*(?=\s)")


def find_last_sentence_end(text: str) -> int:
    """
    Retorna a posição logo após o último fim de frase em text, ou -1.
    """
    last_end = -1
    for match in SENTENCE_END_RE.finditer(text):
        last_end = match.end()
    return last_end


class SentenceBuffer:
    """
    Agrupa deltas de texto em blocos terminados em fim de frase.

    - Libera até o último fim de frase quando o buffer tem pelo menos min_chars
    - Libera tudo quando o buffer atinge max_chars
    - Libera tudo quando flush_interval segundos se passaram desde o último envio

    A concatenação de todos os blocos liberados é igual à concatenação da entrada.
    """

    def __init__(
        self,
        min_chars: int = 40,
        max_chars: int = 400,
        flush_interval: float = 1.5,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._min_chars = min_chars
        self._max_chars = max_chars
        self._flush_interval = flush_interval
        self._clock = clock or time.monotonic
        self._buffer = ""
        self._last_flush = self._clock()

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, text: str) -> List[str]:
        """
        Adiciona um delta ao buffer.

        Returns:
            Blocos prontos para envio (lista vazia se nada deve ser liberado)
        """
        if text:
            self._buffer += text

        if not self._buffer:
            return []

        if len(self._buffer) >= self._max_chars:
            return [self._take(len(self._buffer))]

        if len(self._buffer) >= self._min_chars:
            end = find_last_sentence_end(self._buffer)
            if end > 0:
                return [self._take(end)]

        if self._clock() - self._last_flush >= self._flush_interval:
            return [self._take(len(self._buffer))]

        return []

    def flush(self) -> str:
        """
        Libera todo o texto restante (fim do stream).
        """
        return self._take(len(self._buffer))

    def _take(self, end: int) -> str:
        chunk, self._buffer = self._buffer[:end], self._buffer[end:]
        self._last_flush = self._clock()
        return chunk
