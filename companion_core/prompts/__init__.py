from .companion import GenerationPrompt, build_reply_prompt, build_system_prompt

__all__ = ["GenerationPrompt", "build_reply_prompt", "build_system_prompt"]
