"""Model registry: the configured model catalog and its failover order."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from zhanwen_admin.errors import (
    CannotDeletePrimary,
    CryptoError,
    DuplicateModelName,
    InvalidModelPayload,
    ModelNotFound,
    PromotionConflict,
    ProviderNotFound,
)
from zhanwen_admin.models.model_config import (
    DEFAULT_PARAMETERS,
    MODEL_ROLES,
    MODEL_TYPES,
    ROLE_DISABLED,
    ROLE_PRIMARY,
    ROLE_SECONDARY,
    ModelConfig,
)
from zhanwen_admin.models.provider import Provider, provider_slug
from zhanwen_admin.services.vault import MASK, CredentialVault, get_vault, mask_secret

logger = structlog.get_logger(__name__)

CUSTOM_PROVIDER = "custom"
DEFAULT_CUSTOM_BASE_URL = "https://api.openai.com/v1"

# Plain column updates accepted by ``update``
UPDATABLE_FIELDS = (
    "name",
    "display_name",
    "model_type",
    "priority",
    "context_window",
    "cost_per_1k_tokens",
    "custom_api_url",
    "is_active",
)
NULLABLE_FIELDS = ("custom_api_url",)


@dataclass(frozen=True)
class DispatchCandidate:
    """A usable model with its decrypted credential, in failover order.

    Built fresh for each dispatch and never persisted; the credential is kept
    out of ``repr`` so candidates can be logged safely.
    """

    model_id: int
    name: str
    display_name: str
    role: str
    priority: int
    provider_name: str
    base_url: Optional[str]
    parameters: Dict[str, Any] = field(default_factory=dict)
    credential: str = field(default="", repr=False)


def candidate_order(model: ModelConfig) -> tuple:
    """Primary first, then ascending priority (model id breaks ties)."""
    return (model.role != ROLE_PRIMARY, model.priority, model.model_id)


class ModelRegistry:
    """Reads and writes ``ModelConfig`` rows.

    Holds the single-primary invariant: every path that makes a model primary
    goes through :meth:`_apply_promotion`, which demotes any other primary in
    the same transaction.
    """

    def __init__(self, db: AsyncSession, vault: Optional[CredentialVault] = None):
        self.db = db
        self.vault = vault or get_vault()

    # Reads

    async def list_candidates(self) -> List[DispatchCandidate]:
        """Usable models in dispatch order, with credentials decrypted.

        Inactive or disabled models, models of inactive providers and models
        without a credential are left out. A credential that fails to decrypt
        skips that row only.
        """
        result = await self.db.execute(
            select(ModelConfig)
            .where(ModelConfig.is_active.is_(True), ModelConfig.role != ROLE_DISABLED)
            .execution_options(populate_existing=True)
        )
        models = sorted(result.scalars().all(), key=candidate_order)
        if models:
            self.vault.ensure_configured()

        candidates = []
        for model in models:
            provider = model.provider
            if provider is not None and not provider.is_active:
                continue
            if not model.encrypted_credential:
                continue
            try:
                credential = self.vault.decrypt(model.encrypted_credential)
            except CryptoError as e:
                logger.warning(
                    "credential_decrypt_failed",
                    model_id=model.model_id,
                    model=model.name,
                    error=e.message,
                )
                continue
            if not credential.strip():
                continue

            candidates.append(
                DispatchCandidate(
                    model_id=model.model_id,
                    name=model.name,
                    display_name=model.display_name,
                    role=model.role,
                    priority=model.priority,
                    provider_name=provider.name if provider is not None else "unknown",
                    base_url=model.custom_api_url
                    or (provider.base_url if provider is not None else None),
                    parameters=dict(model.parameters or {}),
                    credential=credential,
                )
            )
        return candidates

    async def get(self, model_id: int, for_update: bool = False) -> ModelConfig:
        query = select(ModelConfig).where(ModelConfig.model_id == model_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        model = result.scalar_one_or_none()
        if not model:
            raise ModelNotFound(f"Model {model_id} not found")
        return model

    async def list_models(
        self,
        limit: int = 50,
        offset: int = 0,
        provider: Optional[str] = None,
        role: Optional[str] = None,
    ) -> List[ModelConfig]:
        query = select(ModelConfig).order_by(
            ModelConfig.priority.asc(), ModelConfig.model_id.asc()
        )
        if provider:
            query = query.join(Provider).where(Provider.name == provider.lower())
        if role:
            query = query.where(ModelConfig.role == role)
        result = await self.db.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all())

    def describe(self, model: ModelConfig) -> Dict[str, Any]:
        """Admin display view; the credential only ever appears masked."""
        provider = model.provider
        ciphertext = model.encrypted_credential or (
            provider.encrypted_credential if provider is not None else None
        )
        masked = None
        if ciphertext:
            try:
                masked = mask_secret(self.vault.decrypt(ciphertext))
            except CryptoError:
                masked = MASK

        return {
            "model_id": model.model_id,
            "provider_id": model.provider_id,
            "provider_name": provider.name if provider is not None else None,
            "provider_display_name": provider.display_name if provider is not None else None,
            "name": model.name,
            "display_name": model.display_name,
            "model_type": model.model_type,
            "role": model.role,
            "priority": model.priority,
            "parameters": model.parameters,
            "context_window": model.context_window,
            "cost_per_1k_tokens": model.cost_per_1k_tokens,
            "custom_api_url": model.custom_api_url,
            "is_active": model.is_active,
            "metadata": model.metadata_json,
            "api_key": masked,
            "created_at": model.created_at.isoformat() if model.created_at else None,
            "updated_at": model.updated_at.isoformat() if model.updated_at else None,
        }

    # Writes

    async def create(self, payload: Dict[str, Any]) -> ModelConfig:
        """Register a model; ``role="primary"`` promotes it.

        A plaintext ``api_key`` is encrypted before storage and also becomes
        the provider's shared credential. Without one the model inherits the
        provider's stored credential.
        """
        name = (payload.get("name") or "").strip()
        if not name:
            raise InvalidModelPayload("Model name is required")
        role = payload.get("role") or ROLE_SECONDARY
        model_type = payload.get("model_type") or "chat"
        self._validate_choices(role=role, model_type=model_type)

        promoting = role == ROLE_PRIMARY
        try:
            provider = await self._resolve_provider(payload)
            await self._ensure_unique_name(provider.provider_id, name)

            api_key = payload.get("api_key")
            if api_key:
                encrypted = self.vault.encrypt(api_key)
                provider.encrypted_credential = encrypted
            else:
                encrypted = provider.encrypted_credential

            model = ModelConfig(
                provider_id=provider.provider_id,
                name=name,
                display_name=payload.get("display_name") or name,
                model_type=model_type,
                role=ROLE_SECONDARY if promoting else role,
                priority=payload.get("priority") or 100,
                parameters=payload.get("parameters") or dict(DEFAULT_PARAMETERS),
                context_window=payload.get("context_window") or 4000,
                cost_per_1k_tokens=float(payload.get("cost_per_1k_tokens") or 0),
                custom_api_url=payload.get("custom_api_url"),
                encrypted_credential=encrypted,
                is_active=payload.get("is_active") is not False,
                metadata_json=payload.get("metadata") or {},
            )
            model.provider = provider
            self.db.add(model)
            await self.db.flush()

            if promoting:
                await self._apply_promotion(model)

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise self._integrity_error(promoting, name) from e

        await self.db.refresh(model)
        logger.info(
            "model_created",
            model_id=model.model_id,
            model=model.name,
            provider=provider.name,
            role=model.role,
        )
        return model

    async def update(self, model_id: int, payload: Dict[str, Any]) -> ModelConfig:
        """Apply a partial update; ``role="primary"`` promotes the model.

        A new non-empty ``api_key`` is written to the model, its provider and
        every other model of that provider.
        """
        role = payload.get("role")
        self._validate_choices(role=role, model_type=payload.get("model_type"))
        promoting = False

        try:
            model = await self.get(model_id, for_update=role == ROLE_PRIMARY)
            promoting = role == ROLE_PRIMARY and model.role != ROLE_PRIMARY

            new_name = payload.get("name")
            if new_name is not None:
                new_name = str(new_name).strip()
                if not new_name:
                    raise InvalidModelPayload("Model name is required")
                if new_name != model.name:
                    await self._ensure_unique_name(model.provider_id, new_name)
                payload = {**payload, "name": new_name}

            for key in UPDATABLE_FIELDS:
                if key in payload and (payload[key] is not None or key in NULLABLE_FIELDS):
                    setattr(model, key, payload[key])
            if "metadata" in payload:
                model.metadata_json = payload["metadata"] or {}
            if payload.get("parameters"):
                model.parameters = {**(model.parameters or {}), **payload["parameters"]}
            if role is not None and role != ROLE_PRIMARY:
                model.role = role

            if "api_key" in payload:
                await self._replace_credential(model, payload["api_key"])

            if promoting:
                await self._apply_promotion(model)

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise self._integrity_error(promoting, payload.get("name")) from e

        await self.db.refresh(model)
        logger.info("model_updated", model_id=model.model_id, model=model.name, role=model.role)
        return model

    async def promote(self, model_id: int) -> ModelConfig:
        """Make ``model_id`` the only primary; any other primary becomes secondary."""
        try:
            model = await self.get(model_id, for_update=True)
            if model.role == ROLE_PRIMARY:
                return model
            await self._apply_promotion(model)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise self._integrity_error(True) from e

        await self.db.refresh(model)
        return model

    async def delete(self, model_id: int) -> None:
        model = await self.get(model_id)
        if model.role == ROLE_PRIMARY:
            raise CannotDeletePrimary(
                "The primary model cannot be deleted; promote another model first",
                detail={"model_ids": [model_id]},
            )
        await self.db.delete(model)
        await self.db.commit()
        logger.info("model_deleted", model_id=model_id, model=model.name)

    async def batch_delete(self, model_ids: Sequence[int]) -> int:
        """Delete several models; nothing is deleted if any of them is primary."""
        ids = list(dict.fromkeys(model_ids))
        if not ids:
            raise InvalidModelPayload("No model ids provided")

        result = await self.db.execute(
            select(ModelConfig).where(ModelConfig.model_id.in_(ids))
        )
        models = list(result.scalars().all())
        primary_ids = [m.model_id for m in models if m.role == ROLE_PRIMARY]
        if primary_ids:
            raise CannotDeletePrimary(
                "The primary model cannot be deleted; promote another model first",
                detail={"model_ids": primary_ids},
            )

        for model in models:
            await self.db.delete(model)
        await self.db.commit()
        logger.info("model_deleted", model_ids=ids, deleted_count=len(models))
        return len(models)

    # Internals

    async def _apply_promotion(self, model: ModelConfig) -> None:
        """Demote every other primary, then mark ``model`` primary.

        Runs inside the caller's transaction. Existing primaries are locked
        first so concurrent promotions serialize; the partial unique index on
        ``role`` rejects whichever one loses a race that locking cannot see.
        """
        result = await self.db.execute(
            select(ModelConfig.model_id)
            .where(
                ModelConfig.role == ROLE_PRIMARY,
                ModelConfig.model_id != model.model_id,
            )
            .with_for_update()
        )
        demoted = list(result.scalars().all())

        await self.db.execute(
            update(ModelConfig)
            .where(
                ModelConfig.role == ROLE_PRIMARY,
                ModelConfig.model_id != model.model_id,
            )
            .values(role=ROLE_SECONDARY)
            .execution_options(synchronize_session="fetch")
        )
        model.role = ROLE_PRIMARY
        await self.db.flush()

        logger.info("model_promoted", model_id=model.model_id, demoted=demoted)

    async def _replace_credential(self, model: ModelConfig, api_key: Optional[str]) -> None:
        if not api_key:
            model.encrypted_credential = None
            return

        encrypted = self.vault.encrypt(api_key)
        model.encrypted_credential = encrypted
        if model.provider is not None:
            model.provider.encrypted_credential = encrypted
        await self.db.execute(
            update(ModelConfig)
            .where(ModelConfig.provider_id == model.provider_id)
            .values(encrypted_credential=encrypted)
            .execution_options(synchronize_session="fetch")
        )

    async def _resolve_provider(self, payload: Dict[str, Any]) -> Provider:
        """Find the provider a payload refers to, by id or name, or upsert a custom one."""
        raw = payload.get("provider_id")
        if isinstance(raw, (list, tuple)):
            if len(raw) != 1:
                raise InvalidModelPayload("A model can only belong to one provider")
            raw = raw[0]
        if raw is None or raw == "":
            raise InvalidModelPayload("provider_id is required")

        if isinstance(raw, str) and raw.strip().lower() == CUSTOM_PROVIDER:
            return await self._upsert_custom_provider(payload)

        provider = None
        if isinstance(raw, int) and not isinstance(raw, bool):
            provider = await self.db.get(Provider, raw)
        elif isinstance(raw, str):
            value = raw.strip()
            if "," in value:
                raise InvalidModelPayload("A model can only belong to one provider")
            if value.isdigit():
                provider = await self.db.get(Provider, int(value))
            if provider is None:
                result = await self.db.execute(
                    select(Provider).where(Provider.name == value.lower())
                )
                provider = result.scalar_one_or_none()

        if provider is None:
            raise ProviderNotFound(f"Provider '{raw}' not found")
        return provider

    async def _upsert_custom_provider(self, payload: Dict[str, Any]) -> Provider:
        display_name = (payload.get("custom_provider_name") or "").strip()
        if not display_name:
            raise InvalidModelPayload("custom_provider_name is required for custom providers")

        slug = provider_slug(display_name)
        result = await self.db.execute(select(Provider).where(Provider.name == slug))
        provider = result.scalar_one_or_none()
        if provider is None:
            provider = Provider(
                name=slug,
                display_name=display_name,
                base_url=payload.get("custom_api_url") or DEFAULT_CUSTOM_BASE_URL,
                supported_models=[],
                is_active=True,
            )
            self.db.add(provider)
            await self.db.flush()
        return provider

    async def _ensure_unique_name(self, provider_id: int, name: str) -> None:
        result = await self.db.execute(
            select(ModelConfig.model_id).where(
                ModelConfig.provider_id == provider_id, ModelConfig.name == name
            )
        )
        if result.scalar_one_or_none() is not None:
            raise DuplicateModelName(f"Model '{name}' already exists for this provider")

    @staticmethod
    def _validate_choices(role: Optional[str], model_type: Optional[str]) -> None:
        if role is not None and role not in MODEL_ROLES:
            raise InvalidModelPayload(f"Unknown role '{role}'")
        if model_type is not None and model_type not in MODEL_TYPES:
            raise InvalidModelPayload(f"Unknown model type '{model_type}'")

    @staticmethod
    def _integrity_error(promoting: bool, name: Optional[str] = None):
        if promoting:
            return PromotionConflict("Another model was promoted concurrently; retry")
        return DuplicateModelName(f"Model '{name}' already exists for this provider")
