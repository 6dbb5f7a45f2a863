import logging
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from .models import UserPreferences
from ..core.models import BusinessInfo, RoleInfo, ThemesInfo, UserBusinessContext

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "display_name",
    "business_sector",
    "business_other_sector",
    "business_description",
    "role_type",
    "role_other_type",
    "themes_selected",
    "themes_custom",
)


def preferences_to_context(prefs: UserPreferences) -> UserBusinessContext:
    """
    Converte o registro salvo no contexto usado pelo prompt do assistente.
    """
    return UserBusinessContext(
        business=BusinessInfo(
            sector=prefs.business_sector,
            other_sector=prefs.business_other_sector,
            description=prefs.business_description,
        ),
        role=RoleInfo(type=prefs.role_type, other_type=prefs.role_other_type),
        themes=ThemesInfo(selected=list(prefs.themes_selected or []), custom=prefs.themes_custom),
    )


class PreferencesRepository:
    """
    Repositório para persistência das preferências de usuário.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, user_id: str) -> Optional[UserPreferences]:
        return self._db.get(UserPreferences, user_id)

    def upsert(self, user_id: str, fields: Dict[str, Any]) -> UserPreferences:
        """
        Cria ou atualiza as preferências do usuário.

        Campos fora de EDITABLE_FIELDS são ignorados.
        """
        updates = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        # "other" sem texto livre não deve manter o texto antigo
        if updates.get("business_sector") not in (None, "other"):
            updates["business_other_sector"] = None
        if updates.get("role_type") not in (None, "other"):
            updates["role_other_type"] = None

        logger.debug(f"Salvando preferências: user_id={user_id}, fields={sorted(updates)}")

        try:
            prefs = self.get(user_id)
            if prefs is None:
                prefs = UserPreferences(user_id=user_id, themes_selected=[])
                self._db.add(prefs)
            for key, value in updates.items():
                setattr(prefs, key, value)
            prefs.updated_at = datetime.utcnow()
            self._db.commit()
            self._db.refresh(prefs)
            return prefs
        except SQLAlchemyError as e:
            logger.error(
                f"Erro de banco de dados ao salvar preferências: user_id={user_id}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise
