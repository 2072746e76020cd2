"""Message-approval workflow and knowledge aggregation pipeline.

Modules:
  - settings: two-tier settings resolution
  - prompt_composer: pure prompt assembly from settings and knowledge
  - generation: AI completion with timeout and error mapping
  - delivery: sending replies through the Instagram tools
  - router: confidence-gated disposition of fresh drafts
  - drafting: draft generation for stored messages, simulator
  - approval: approve / reject / regenerate / feedback
  - ingestion: webhook normalization
  - sync: account sync with progress events
  - personality: system prompt synthesis
"""
