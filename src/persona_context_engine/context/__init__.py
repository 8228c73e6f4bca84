# persona_context_engine/context/__init__.py
"""Context assembly and its collaborators (snapshot, storage)."""

from persona_context_engine.context.assembler import (  # noqa: F401
    ContextAssembler,
    build_system_prompt,
    render_base_content,
)
from persona_context_engine.context.patterns import (  # noqa: F401
    filter_files,
    matches_any,
    priority_score,
)
from persona_context_engine.context.snapshot import (  # noqa: F401
    DirectorySnapshot,
    ProjectSnapshot,
    StaticSnapshot,
)
from persona_context_engine.context.storage import (  # noqa: F401
    FileStorage,
    InMemoryStorage,
    Storage,
)
