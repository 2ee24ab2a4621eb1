#!/usr/bin/env python3
"""
toolchat CLI.

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    serve           start, up       Start the REST server
    chat            repl            Chat with the tools in the terminal
    index           ingest          Chunk + embed text files for document search
    tools           ls              List the tools each chapter advertises
"""

import argparse
import asyncio
import sys
from pathlib import Path

from toolchat import __version__


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _vector_store(cfg: dict):
    from toolchat.storage.vector_store import VectorStore
    try:
        return VectorStore.from_config(cfg)
    except Exception as e:
        print(f"  ⚠ Vector store unavailable: {e}")
        return None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_serve(args):
    """Start the REST server."""
    import uvicorn
    from toolchat.config import get_config

    cfg = get_config()
    host = args.host or cfg["server"]["host"]
    port = args.port or cfg["server"]["port"]

    print(f"  toolchat v{__version__} listening on {host}:{port}")
    print(f"  Backend: {cfg['backend'].get('provider', 'openai')} @ {cfg['backend']['url']}")
    print()

    uvicorn.run(
        "toolchat.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


def cmd_chat(args):
    """Interactive chat against one chapter's tools."""
    from toolchat.backends import make_backend
    from toolchat.chapters import CHAPTERS, ChapterService
    from toolchat.config import get_config
    from toolchat.conversation import Conversation
    from toolchat.errors import ToolChatError

    cfg = get_config()
    if args.chapter not in CHAPTERS:
        print(f"  ✗ Unknown chapter '{args.chapter}'. Choose from: {', '.join(CHAPTERS)}")
        sys.exit(2)

    backend = make_backend(cfg)
    families = CHAPTERS[args.chapter].tool_families
    vector_store = _vector_store(cfg) if "document_search" in families else None
    service = ChapterService.from_config(cfg, backend, vector_store)

    tools = service.registry(args.chapter).list_tools()
    print(f"  Chapter: {args.chapter}  Tools: {', '.join(tools) or 'none'}")
    print("  Type 'exit' or Ctrl-C to quit.\n")

    async def _loop():
        # One conversation for the whole REPL, whatever the chapter's web policy
        conversation = Conversation(system_prompt=service.system_prompt)
        registry = service.registry(args.chapter)
        while True:
            try:
                question = input("  you> ").strip()
            except EOFError:
                break
            if not question:
                continue
            if question.lower() in ("exit", "quit", "q"):
                break
            try:
                result = await service.orchestrator.turn(conversation, question, registry, service.options)
            except ToolChatError as e:
                print(f"\n  ✗ {type(e).__name__}: {e}\n")
                continue
            print(f"\n  ai> {result.final_text}\n")

    try:
        asyncio.run(_loop())
    except KeyboardInterrupt:
        print()


def cmd_index(args):
    """Chunk text files and add them to the document collection."""
    from toolchat.config import get_config
    from toolchat.storage.vector_store import chunk_text

    cfg = get_config()
    store = _vector_store(cfg)
    if store is None:
        sys.exit(1)

    files: list[Path] = []
    for raw in args.paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(p for p in path.rglob("*") if p.suffix in (".txt", ".md")))
        elif path.is_file():
            files.append(path)
        else:
            print(f"  ⚠ Skipping missing path: {path}")

    added = skipped = failed = 0
    for path in files:
        text = path.read_text(encoding="utf-8", errors="replace")
        chunks = chunk_text(text, size=args.chunk_size, overlap=args.overlap)
        # Chunk ids are keyed on the resolved path
        source = str(path.resolve())
        for i, chunk in enumerate(chunks):
            try:
                ok = store.add_document(f"{source}#{i}", chunk, metadata={"source": str(path), "chunk": i})
            except Exception as e:
                print(f"  ⚠ {path} chunk {i}: {e}")
                failed += 1
                continue
            if ok:
                added += 1
            else:
                skipped += 1
        print(f"  {path}: {len(chunks)} chunk(s)")

    print(f"\n  ✓ {added} chunk(s) indexed, {skipped} skipped, {failed} failed")
    print(f"  Collection size: {store.get_stats()['total_chunks']}")


def cmd_tools(args):
    """List the tools each chapter advertises."""
    from toolchat.chapters import CHAPTERS
    from toolchat.config import get_config
    from toolchat.tools.registry import build_registry

    cfg = get_config()
    for name, chapter in CHAPTERS.items():
        # Dependencies are not constructed here, so pass sentinels to list names
        registry = build_registry(
            cfg,
            vector_store=object() if "document_search" in chapter.tool_families else None,
            backend=object() if "prompts" in chapter.tool_families else None,
            include=chapter.tool_families,
        )
        print(f"  {name:<10} {chapter.description}")
        for desc in registry.describe_all():
            params = ", ".join(
                f"{p.name}: {p.type}" + ("" if p.required else "?") for p in desc.parameters
            )
            print(f"      ⚡ {desc.name}({params})")
        print()


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under several names."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def main():
    parser = argparse.ArgumentParser(
        prog="toolchat",
        description="toolchat — tool-augmented chat over an OpenAI-compatible backend.",
        epilog="Run 'toolchat <command> --help' for command-specific options.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"toolchat {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_serve(p):
        p.add_argument("--host", default=None, help="Override listen host")
        p.add_argument("--port", "-p", type=int, default=None, help="Override listen port")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")
    _add_command(sub, ["serve", "start", "up"], "Start the REST server", cmd_serve, setup_serve)

    def setup_chat(p):
        p.add_argument("--chapter", "-c", default="chat", help="Tool profile to use (default: chat)")
    _add_command(sub, ["chat", "repl"], "Chat with the tools in the terminal", cmd_chat, setup_chat)

    def setup_index(p):
        p.add_argument("paths", nargs="+", help="Files or directories (.txt, .md)")
        p.add_argument("--chunk-size", type=int, default=1000, help="Characters per chunk")
        p.add_argument("--overlap", type=int, default=100, help="Characters shared between chunks")
    _add_command(sub, ["index", "ingest"], "Chunk + embed files for document search", cmd_index, setup_index)

    _add_command(sub, ["tools", "ls"], "List the tools each chapter advertises", cmd_tools)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
