"""Command-style interface over the registry and link extractor, for terminal use."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from .config import AppConfig, load_config
from .errors import DeployError, InvalidInput
from .link_extractor import SelectedFile, annotate_links, extract_urls, read_selected_file
from .registry import PlatformRegistry, create_default_registry
from .url_parser import is_valid_url

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    success: bool
    message: str
    data: Any = None

    def to_dict(self) -> dict:
        d = {"success": self.success, "message": self.message}
        if self.data is not None:
            d["data"] = self.data
        return d


@dataclass
class Command:
    name: str
    description: str
    usage: str
    handler: Callable[[list[str]], CommandResult]


class LinkDeployerCommands:
    """Named commands taking string arguments and returning CommandResult."""

    def __init__(self, registry: PlatformRegistry, config: Optional[AppConfig] = None) -> None:
        self.registry = registry
        self.config = config or AppConfig.defaults()
        self.commands: dict[str, Command] = {}
        self._register_commands()

    def _register_commands(self) -> None:
        for command in (
            Command("resolve", "Detect the platform of a URL", "resolve <url>", self._resolve),
            Command("detect", "Alias for resolve", "detect <url>", self._resolve),
            Command("extract", "Extract the video ID from a URL", "extract <url>", self._extract),
            Command("process", "Get the playable URL for a video", "process <url>", self._process),
            Command("embed", "Get embed data for a video", "embed <url>", self._embed),
            Command("file", "Extract video URLs from a file", "file <filepath>", self._file),
            Command("platforms", "List registered platforms", "platforms", self._platforms),
            Command("config", "Show configuration", "config", self._config),
            Command("help", "Show help information", "help [command]", self._help),
        ):
            self.commands[command.name] = command

    def execute(self, command_line: str) -> CommandResult:
        """Run one command line such as "resolve https://youtu.be/..."."""
        parts = (command_line or "").split()
        if not parts:
            return CommandResult(False, 'No command provided. Type "help" for available commands.')

        name, args = parts[0].lower(), parts[1:]
        command = self.commands.get(name)
        if command is None:
            return CommandResult(False, f'Unknown command: {parts[0]}. Type "help" for available commands.')

        try:
            return command.handler(args)
        except DeployError as e:
            return CommandResult(False, f"Error executing command: {e.message}", {"kind": e.kind})

    def _require_url(self, args: list[str], usage: str) -> str:
        if not args:
            raise InvalidInput(f"Usage: {usage}")
        url = args[0]
        if not is_valid_url(url):
            raise InvalidInput(f"Invalid URL: {url}")
        return url

    # -- handlers ---------------------------------------------------------

    def _resolve(self, args: list[str]) -> CommandResult:
        if not args:
            return CommandResult(False, "Usage: resolve <url>")
        platform = self.registry.resolve_name(args[0])
        if platform is None:
            return CommandResult(False, f"Invalid URL: {args[0]}", {"platform": None})
        return CommandResult(True, f"Platform detected: {platform}", {"platform": platform})

    def _extract(self, args: list[str]) -> CommandResult:
        url = self._require_url(args, "extract <url>")
        platform, handler = self.registry.handler_for(url)
        video_id = handler.identify_reference(url)
        return CommandResult(
            True,
            f"Video ID: {video_id or 'Not found'}",
            {"platform": platform, "video_id": video_id},
        )

    def _process(self, args: list[str]) -> CommandResult:
        url = self._require_url(args, "process <url>")
        platform, handler = self.registry.handler_for(url)
        playable = handler.make_playable(url)
        return CommandResult(True, "URL processed successfully", {"platform": platform, "processed_url": playable})

    def _embed(self, args: list[str]) -> CommandResult:
        url = self._require_url(args, "embed <url>")
        _, handler = self.registry.handler_for(url)
        return CommandResult(True, "Embed data retrieved", handler.make_embeddable(url).to_dict())

    def _file(self, args: list[str]) -> CommandResult:
        if not args:
            return CommandResult(False, "Usage: file <filepath>")
        path = Path(" ".join(args))
        content = read_selected_file(SelectedFile(name=path.name, path=path))
        urls = extract_urls(content, path.name)
        links = [link.to_dict() for link in annotate_links(urls, self.registry)]
        return CommandResult(True, f"Found {len(urls)} video URL(s) in {path.name}", {"urls": urls, "links": links})

    def _platforms(self, args: list[str]) -> CommandResult:
        names = self.registry.names()
        return CommandResult(True, f"Supported platforms: {', '.join(names)}", {"platforms": names})

    def _config(self, args: list[str]) -> CommandResult:
        entries = self.registry.all()
        lines = [
            f"  {e.name}: {'enabled' if e.enabled else 'disabled'} (priority: {e.priority})"
            for e in entries
        ]
        message = f"{self.registry.summary()}\n\nPlatforms:\n" + "\n".join(lines)
        return CommandResult(
            True,
            message,
            {"platforms": [e.to_dict() for e in entries], "settings": self.config.to_dict()},
        )

    def _help(self, args: list[str]) -> CommandResult:
        if args:
            command = self.commands.get(args[0].lower())
            if command is None:
                return CommandResult(False, f"Unknown command: {args[0]}")
            return CommandResult(True, f"{command.name} - {command.description}\nUsage: {command.usage}")

        help_text = "\n".join(f"  {c.name.ljust(12)} - {c.description}" for c in self.commands.values())
        return CommandResult(
            True,
            f'Available commands:\n{help_text}\n\nType "help <command>" for more information.',
        )


def main(argv: Optional[list[str]] = None) -> int:
    """Run a single command from the shell: linkdeployer-cmd resolve <url> [--json]."""
    args = list(sys.argv[1:] if argv is None else argv)
    as_json = "--json" in args
    args = [a for a in args if a != "--json"]

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    config = load_config()
    commands = LinkDeployerCommands(create_default_registry(config.default_priority), config)
    result = commands.execute(" ".join(args) if args else "help")

    if as_json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(result.message)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
