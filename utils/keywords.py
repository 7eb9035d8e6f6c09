"""
Shared keywords for AI relevance filtering.

Short tokens collide with ordinary words ("ai" in "said", "ml" in "html"),
so they are matched on word boundaries only. Phrases are matched as plain
substrings of the lowercased text.
"""

AI_SHORT_TOKENS = [
    "ai", "ml", "llm", "llms", "gpt", "agi", "nlp", "rag", "gan", "rlhf",
    "vlm", "asr", "tts", "cv", "moe", "lora", "sft",
]

AI_PHRASES = [
    "artificial intelligence", "machine learning", "deep learning", "neural network",
    "language model", "large language", "transformer", "diffusion model", "generative",
    "chatgpt", "openai", "anthropic", "claude", "gemini", "deepmind", "mistral",
    "llama", "copilot", "hugging face", "huggingface", "stable diffusion", "midjourney",
    "reinforcement learning", "computer vision", "fine-tun", "embedding", "inference",
    "prompt", "chatbot", "autonomous agent", "ai agent", "multimodal", "text-to-image",
    "text-to-video", "speech recognition", "pytorch", "tensorflow", "nvidia", "gpu",
    "benchmark", "foundation model", "frontier model", "alignment", "superintelligence",
]
