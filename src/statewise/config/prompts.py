"""
Prompt templates for the Statewise engine.

Templates use ChatPromptTemplate's f-string syntax: ``{name}`` is a variable,
``{{`` and ``}}`` are literal braces.
"""

STATE_MODEL_SECTION = """
State Model (fields to track):
{state_fields}

Current State:
{current_state}
"""

TOOLS_SECTION = """
Available Tools (name and description):
{available_tools}
"""

HISTORY_SECTION = """
Previous Conversation:
{conversation_history}
"""

# Variant a: state and response in one call, no tools attached
STATE_EXTRACTION_INSTRUCTIONS = """
Instructions:
1. Analyze the user message and update state fields based on the state model
2. For each field in the state model, determine its value from the user message or keep the previous value
3. Provide a natural, helpful response to the user

Respond with ONLY a valid JSON object in the following format:
{{
  "state": {{
    // Complete state object with all fields from state model
  }},
  "response": "Your helpful and natural response to the user"
}}
"""

# Variant b: state and tool requests, response deferred
STATE_AND_TOOLS_INSTRUCTIONS = """
Instructions:
1. Analyze the user message and determine the new state values based on the state model
2. For each field in the state model, determine its current value based on the user message and previous state
3. If a value hasn't changed or can't be determined from the message, keep the previous value
4. Identify which tools should be invoked to populate any state fields that require external data
5. For each tool that should be invoked, specify:
   - tool_name: the exact name of the tool
   - reason: why this tool should be invoked
   - state_field: which state field will be populated by this tool's result
   - input_params: the parameters to pass to the tool (as a JSON object)
"""

POST_ANALYSIS_INSTRUCTIONS = """6. Identify state fields that depend on tool results or other state fields and cannot be fully determined until after tools are invoked.
   For example:
   - A field that should be "the first element" of an array populated by a tool
   - A field that depends on processing tool results
   - A field that references other state fields that will be updated by tools
   List these fields in "fields_needing_post_analysis"
"""

STATE_AND_TOOLS_FORMAT = """
Respond with ONLY a valid JSON object in the following format:
{{
  "state": {{
    // Complete state object with all fields from state model
  }},
  "tools_to_invoke": [
    // Array of tool invocation objects, or empty array if no tools needed
    {{
      "tool_name": "Tool Name",
      "reason": "Reason for invocation",
      "state_field": "field_name",
      "input_params": {{}}
    }}
  ]
}}
"""

STATE_AND_TOOLS_WITH_POST_ANALYSIS_FORMAT = """
Respond with ONLY a valid JSON object in the following format:
{{
  "state": {{
    // Complete state object with all fields from state model
  }},
  "tools_to_invoke": [
    // Array of tool invocation objects, or empty array if no tools needed
    {{
      "tool_name": "Tool Name",
      "reason": "Reason for invocation",
      "state_field": "field_name",
      "input_params": {{}}
    }}
  ],
  "fields_needing_post_analysis": [
    // Array of state field names that need re-analysis after tools run, or empty array
    "field_name_1"
  ]
}}
"""

# Double-prompt call 1 without tools attached
STATE_ONLY_INSTRUCTIONS = """
Instructions:
1. Analyze the user message and determine the new state values based on the state model
2. For each field in the state model, determine its current value based on the user message and previous state
3. If a value hasn't changed or can't be determined from the message, keep the previous value

Respond with ONLY a valid JSON object in the following format:
{{
  "state": {{
    // Complete state object with all fields from state model
  }}
}}
"""

# Variant c: reconcile state from tool results
TOOL_RESULTS_SECTION = """
Tool Invocation Results:
{tool_results}
"""

FOCUS_FIELDS_SECTION = """
Fields to determine from the tool results:
{focus_fields}
"""

RECONCILIATION_INSTRUCTIONS = """
Instructions:
1. Review the current state and the tool results
2. Update any state fields that can now be determined from the tool results
3. Keep the exact field names and nesting of the state model; do not invent new fields
4. For fields that still cannot be determined, keep their current values
"""

RECONCILIATION_WITH_RESPONSE_FORMAT = """5. Provide a complete, natural response to the user based on the updated state and tool results

Respond with ONLY a valid JSON object in the following format:
{{
  "state": {{
    // Complete state object with all fields from state model
  }},
  "response": "Your helpful and natural response to the user"
}}
"""

RECONCILIATION_STATE_FORMAT = """
Respond with ONLY a valid JSON object in the following format:
{{
  "state": {{
    // Complete state object with all fields from state model
  }}
}}
"""

# State handler, system role
SYSTEM_UPDATE_PREAMBLE = """You are updating the conversation state based on a system message.
"""

SYSTEM_UPDATE_INSTRUCTIONS = """
Instructions:
1. Analyze the system message and update the state values based on the state model
2. For each field in the state model, determine its current value based on the system message and previous state
3. If a value hasn't changed or can't be determined from the message, keep the previous value
4. Return the complete updated state

Respond with ONLY a valid JSON object representing the complete state (all fields from state model):
{{
  "field1": "value1",
  "field2": "value2"
}}
"""

ANALYSIS_PREAMBLE = """You are analyzing a message to update the conversation state and determine which tools should be invoked to populate missing information.
"""

RECONCILIATION_PREAMBLE = """You are analyzing tool results to update any state fields that can now be determined.
"""

# Variant d: plain response
RESPONSE_INSTRUCTIONS = """
Provide a helpful and natural response to the user.
"""

AGENT_INSTRUCTIONS = """
You have access to various tools that can help you answer questions and perform tasks.
Use the appropriate tools when needed to provide accurate and helpful responses.
Think step-by-step and use tools when they would be helpful.
"""

HUMAN_MESSAGE = "{message}"
