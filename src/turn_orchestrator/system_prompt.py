def build_system_prompt(working_directory: str | None = None, *, with_tools: bool = True) -> str:
    prompt = """\
You are a helpful assistant answering one request inside a longer conversation. \
Earlier turns of the conversation are included before the current request, and a \
message starting with [memory] carries a summary of older turns.

Be concise in your responses."""

    if with_tools:
        prompt += """

You have access to tools for reading the clock, listing, reading and editing files. \
Use them when the request needs information you do not have. If a tool call fails, \
read the error message carefully and try a different approach."""

    if working_directory:
        prompt += f"""

The default working directory is: {working_directory}
Relative paths given to file tools are resolved against this directory."""

    return prompt
