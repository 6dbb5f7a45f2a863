import logging
from typing import Iterable, List, Optional, Tuple
from .models import Message, Role

logger = logging.getLogger(__name__)


def messages_from_pairs(pairs: Iterable[Tuple[str, str]]) -> List[Message]:
    """
    Converte pares (role, content) recebidos da API em Message.

    Papéis desconhecidos são descartados com aviso, em vez de erro.
    """
    messages: List[Message] = []
    for role, content in pairs:
        try:
            messages.append(Message(role=Role(role), content=content))
        except ValueError:
            logger.warning(f"Papel de mensagem desconhecido descartado: role={role!r}")
    return messages


def validate_messages(messages: List[Message]) -> List[Message]:
    """
    Poda a conversa para o formato exigido pela API de busca.

    Regras:
    - Mensagens system só são aceitas antes da primeira mensagem não-system
    - A primeira mensagem não-system precisa ser do usuário
    - user/assistant devem alternar (a primeira ocorrência vence)
    - A conversa termina com uma mensagem do usuário

    Mensagens que violam as regras são descartadas, nunca geram erro.
    Se nenhuma mensagem do usuário sobreviver, retorna lista vazia.

    Args:
        messages: Conversa original, em ordem

    Returns:
        Nova lista com as mensagens válidas
    """
    if not messages:
        return []

    result: List[Message] = []
    system_done = False
    last_role: Optional[Role] = None

    for msg in messages:
        if msg.role == Role.SYSTEM:
            if system_done:
                logger.warning("Mensagem system após mensagens não-system, descartando")
                continue
            result.append(msg)
            continue

        system_done = True

        if last_role is None and msg.role != Role.USER:
            logger.warning("Primeira mensagem não-system precisa ser do usuário, descartando assistant")
            continue

        if msg.role == last_role:
            logger.warning(
                f"Descartando mensagem {msg.role.value} consecutiva para manter alternância"
            )
            continue

        result.append(msg)
        last_role = msg.role

    if result and result[-1].role == Role.ASSISTANT:
        logger.warning("Removendo última mensagem assistant para terminar a conversa com o usuário")
        result.pop()

    if not any(m.role == Role.USER for m in result):
        return []

    return result


def window_history(messages: List[Message], max_messages: int) -> List[Message]:
    """
    Mantém apenas as mensagens mais recentes da conversa, preservando alternância.

    Percorre as mensagens não-system de trás para frente, ignorando
    mensagens com o mesmo papel da anterior já mantida, até o limite.
    Mensagens system continuam no início, sem alteração.

    Args:
        messages: Conversa completa
        max_messages: Limite de mensagens não-system (<= 0 desabilita)

    Returns:
        Lista com as mensagens system seguidas da janela recente
    """
    if max_messages <= 0:
        return list(messages)

    system_messages = [m for m in messages if m.role == Role.SYSTEM]
    turns = [m for m in messages if m.role != Role.SYSTEM]

    window: List[Message] = []
    last_role: Optional[Role] = None
    for msg in reversed(turns):
        if msg.role == last_role:
            continue
        window.insert(0, msg)
        last_role = msg.role
        if len(window) >= max_messages:
            break

    if window and window[0].role != Role.USER:
        window.pop(0)

    if len(window) < len(turns):
        logger.debug(f"Histórico reduzido: de {len(turns)} para {len(window)} mensagens")

    return system_messages + window
