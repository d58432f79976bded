"""
Jenkins + Kaniko CI platform on ECS Fargate
Jenkins on EFS, optional HTTPS endpoint and DNS, Kaniko build task with its own registries
"""
from config import get_config
from src.outputs import export_outputs
from src.stack import build_stack

# Configuration: certificateArn / hostedZoneName switch the public endpoint on
settings = get_config()

# Resources
graph = build_stack(settings)

# Exports
export_outputs(graph)
