"""Slash-style control commands (``/models``, ``/model <provider/model>``)."""

from __future__ import annotations

from typing import Any, Protocol

from opencode_slack.logger import logger
from opencode_slack.opencode import OpenCodeClient
from opencode_slack.state import BridgeState

COMMAND_MARKER = "/"

HELP_TEXT = "Available commands: `/models`, `/model <provider/model>`"


class Notifier(Protocol):
    async def send(self, text: str) -> bool: ...


def catalog_models(catalog: dict[str, Any]) -> dict[str, list[str]]:
    """Flatten the provider catalog into ``{provider_name: ["provider/model", ...]}``."""
    result: dict[str, list[str]] = {}
    for provider in catalog.get("providers") or []:
        provider_id = provider.get("id")
        if not provider_id:
            continue
        models = provider.get("models") or {}
        model_ids = models.keys() if isinstance(models, dict) else [m.get("id") for m in models]
        result[provider.get("name") or provider_id] = sorted(
            f"{provider_id}/{model_id}" for model_id in model_ids if model_id
        )
    return result


class ControlCommands:
    def __init__(self, opencode: OpenCodeClient, notifier: Notifier, state: BridgeState) -> None:
        self._opencode = opencode
        self._notifier = notifier
        self._state = state

    async def handle(self, text: str) -> None:
        parts = text[len(COMMAND_MARKER) :].strip().split(maxsplit=1)
        name = parts[0].lower() if parts else ""
        arg = parts[1].strip() if len(parts) > 1 else ""

        match name:
            case "models":
                await self._list_models()
            case "model" if arg:
                await self._switch_model(arg)
            case "model":
                current = await self.current_model()
                await self._notifier.send(f"Current model: `{current or 'unknown'}`")
            case _:
                await self._notifier.send(f"Command `/{name}` is not supported. {HELP_TEXT}")

    async def current_model(self) -> str | None:
        """The active session's model as ``provider/model``, else the configured default."""
        try:
            session_id = self._state.main_session or await self._latest_session_id()
            if session_id:
                for message in reversed(await self._opencode.session_messages(session_id)):
                    info = message.get("info", message)
                    model = info.get("model") or {}
                    provider_id = info.get("providerID") or model.get("providerID")
                    model_id = info.get("modelID") or model.get("modelID")
                    if provider_id and model_id:
                        return f"{provider_id}/{model_id}"
            return (await self._opencode.get_config()).get("model")
        except Exception as exc:
            logger.warning("Failed to determine current model", err=str(exc))
            return None

    async def _latest_session_id(self) -> str | None:
        sessions = await self._opencode.list_sessions()
        top_level = [s for s in sessions if not s.get("parentID")]
        if not top_level:
            return None
        latest = max(top_level, key=lambda s: (s.get("time") or {}).get("updated", 0))
        return latest.get("id")

    async def _list_models(self) -> None:
        try:
            catalog = catalog_models(await self._opencode.providers())
        except Exception as exc:
            logger.warning("Failed to load model catalog", err=str(exc))
            await self._notifier.send(f"Failed to load models: {exc}")
            return
        if not catalog:
            await self._notifier.send("No models available.")
            return

        current = await self.current_model()
        lines = [f"*Available models* (current: `{current or 'unknown'}`)"]
        for provider_name in sorted(catalog):
            lines.append(f"*{provider_name}*")
            for model in catalog[provider_name]:
                marker = "  ← current" if model == current else ""
                lines.append(f"• `{model}`{marker}")
        await self._notifier.send("\n".join(lines))

    async def _switch_model(self, requested: str) -> None:
        try:
            catalog = catalog_models(await self._opencode.providers())
        except Exception as exc:
            logger.warning("Failed to load model catalog", err=str(exc))
            await self._notifier.send(f"Failed to load models: {exc}")
            return

        known = [m for models in catalog.values() for m in models]
        if requested in known:
            model = requested
        else:
            # Allow a bare model id when it is unambiguous across providers.
            matches = [m for m in known if m.split("/", 1)[1] == requested]
            if len(matches) != 1:
                await self._notifier.send(
                    f"Unknown model `{requested}`. Use `/models` to list available models."
                )
                return
            model = matches[0]

        try:
            await self._opencode.set_model(model)
        except Exception as exc:
            logger.warning("Model switch failed", model=model, err=str(exc))
            await self._notifier.send(f"Failed to switch model: {exc}")
            return
        logger.info("Model switched from chat", model=model)
        await self._notifier.send(f"Model switched to `{model}`")
