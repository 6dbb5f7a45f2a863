from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    role: Role
    content: str


@dataclass
class Completion:
    """
    Resposta completa da API de busca (modo não-streaming).
    """
    content: str
    citations: List[str] = field(default_factory=list)


@dataclass
class BusinessInfo:
    sector: Optional[str] = None
    other_sector: Optional[str] = None
    description: Optional[str] = None

    @property
    def effective_sector(self) -> Optional[str]:
        # "other" só é substituído quando o texto livre foi preenchido
        if self.sector == "other" and self.other_sector:
            return self.other_sector
        return self.sector


@dataclass
class RoleInfo:
    type: Optional[str] = None
    other_type: Optional[str] = None

    @property
    def effective_type(self) -> Optional[str]:
        if self.type == "other" and self.other_type:
            return self.other_type
        return self.type


@dataclass
class ThemesInfo:
    selected: List[str] = field(default_factory=list)
    custom: Optional[str] = None


@dataclass
class UserBusinessContext:
    """
    Contexto de personalização do usuário (negócio, cargo e temas).
    Usado para enriquecer o prompt do sistema do assistente.
    """
    business: BusinessInfo = field(default_factory=BusinessInfo)
    role: RoleInfo = field(default_factory=RoleInfo)
    themes: ThemesInfo = field(default_factory=ThemesInfo)

    def is_empty(self) -> bool:
        return not any([
            self.business.sector,
            self.business.description,
            self.role.type,
            self.themes.selected,
            self.themes.custom,
        ])
