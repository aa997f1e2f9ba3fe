# Models package
from deployer.models.challenge import Challenge
from deployer.models.deployment import Deployment, DeploymentLog
