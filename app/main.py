import logging
import random
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from wordchain.chain_model import build_chain
from wordchain.config import load_config, setup_logging
from wordchain.corpus import DEFAULT_CORPUS, read_lines

config = load_config()
setup_logging(config.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Markov chain text generator")

# -----------------------
# Chain setup
# -----------------------
if config.corpus_path:
    CORPUS_SOURCE = config.corpus_path
    corpus_lines = read_lines(config.corpus_path)
else:
    CORPUS_SOURCE = "default"
    corpus_lines = DEFAULT_CORPUS

chain = build_chain(
    corpus_lines,
    workers=config.workers,
    batch_size=config.batch_size,
    registry_shards=config.registry_shards,
)
logger.info("chain ready from %s corpus: %s", CORPUS_SOURCE, chain.stats())

# -----------------------
# Request schemas
# -----------------------
class GenerationRequest(BaseModel):
    # empty or unknown seed starts from the beginning of a line
    seed: Optional[str] = None
    max_words: Optional[int] = Field(None, ge=1)

# -----------------------
# Root & status
# -----------------------
@app.get("/")
def root():
    return {"status": "Markov chain API active"}

@app.get("/chain/status")
def chain_status():
    return {
        "corpus": CORPUS_SOURCE,
        "frozen": chain.frozen,
        **chain.stats(),
    }

# -----------------------
# Generation
# -----------------------
@app.post("/generate")
@app.post("/generate_text")
def generate_text(req: GenerationRequest):
    try:
        text = chain.generate(req.seed, rng=random.Random(), max_words=req.max_words)
    except Exception as e:
        logger.exception("generation failed for seed %r", req.seed)
        raise HTTPException(status_code=500, detail=f"Markov generation failed: {e}")

    return {
        "generated_text": text,
        "seed_found": chain.lookup(req.seed) is not None,
        "model": "markov",
    }
