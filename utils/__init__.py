# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                          UTILS PACKAGE INITIALIZER                         ║
# ║   Shared helpers: environment access, logging, timezones, formatting and   ║
# ║   standardized error handling.                                             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- split_message_by_lines ---
# Splits a message by lines, ensuring no chunk exceeds the limit.
# A single line longer than the limit becomes its own chunk, hard-cut at the limit.
# Args:
#     message: The text to split.
#     limit: Maximum characters per chunk.
# Returns: A list of chunks, each at most `limit` characters long.
def split_message_by_lines(message: str, limit: int) -> list[str]:
    chunks = []
    current_chunk = ""
    for line in message.split('\n'):
        while len(line) > limit:
            if current_chunk:
                chunks.append(current_chunk)
                current_chunk = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if current_chunk and len(current_chunk) + len(line) + 1 > limit:
            chunks.append(current_chunk)
            current_chunk = line
        else:
            current_chunk = f"{current_chunk}\n{line}" if current_chunk else line
    if current_chunk:
        chunks.append(current_chunk)
    return chunks
